"""Data models for claim submissions."""

from .claim import ClaimDraft, ClaimDocument, Classification, ClaimRecord, clamp_confidence

__all__ = ['ClaimDraft', 'ClaimDocument', 'Classification', 'ClaimRecord', 'clamp_confidence']
