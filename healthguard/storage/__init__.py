"""Storage layer for claim state and chat transcripts."""

from .kv_store import KeyValueStore, InMemoryStore, JsonFileStore
from .claim_session import ClaimSessionState
from .chat_transcript import ChatTranscript

__all__ = ['KeyValueStore', 'InMemoryStore', 'JsonFileStore', 'ClaimSessionState', 'ChatTranscript']
