"""Hand-off of the current claim between views, plus the claim history."""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..models.claim import ClaimDocument, ClaimDraft, ClaimRecord, Classification
from ..utils.errors import StorageError
from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)

CURRENT_CLAIM_KEY = "current_claim"
HISTORY_KEY = "claims"

_MAX_ID_ATTEMPTS = 10


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_claim_id() -> str:
    return f"CLM-{uuid.uuid4().hex[:8].upper()}"


def _timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ClaimSessionState:
    """
    Claim state shared by the upload, results, chat and dashboard views.

    Two stores are involved:
    - ephemeral: one "current claim" slot, overwritten by every submission
    - durable: the "claims" list, most recent first, only ever prepended to

    Reads never raise on malformed data. The store is treated as empty and
    the problem is kept in ``last_error`` so the caller can show a notice.
    """

    def __init__(
        self,
        ephemeral: KeyValueStore,
        durable: KeyValueStore,
        max_history: Optional[int] = None,
        clock: Callable[[], datetime] = _utc_now,
        id_factory: Callable[[], str] = _new_claim_id
    ):
        """
        Args:
            ephemeral: Per-browser-session store
            durable: Store shared by all sessions
            max_history: Keep at most this many claims; None keeps all
            clock: Returns the current time (timezone-aware)
            id_factory: Returns a candidate claim id
        """
        self.ephemeral = ephemeral
        self.durable = durable
        self.max_history = max_history
        self.clock = clock
        self.id_factory = id_factory
        self.last_error: Optional[StorageError] = None

    # Internal helpers

    def _read_json(self, store: KeyValueStore, key: str) -> Any:
        raw = store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise StorageError.corrupted(key, e) from e

    def _note_error(self, error: StorageError) -> None:
        logger.warning(f"Claim store read failed: {error}")
        self.last_error = error

    def _history_entries(self) -> List[Any]:
        """Raw history entries; [] when absent or unreadable."""
        try:
            entries = self._read_json(self.durable, HISTORY_KEY)
        except StorageError as e:
            self._note_error(e)
            return []
        if entries is None:
            return []
        if not isinstance(entries, list):
            self._note_error(
                StorageError.corrupted(HISTORY_KEY, ValueError("claim history is not a list"))
            )
            return []
        return entries

    def _unique_id(self, taken: set) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = self.id_factory()
            if candidate not in taken:
                return candidate
            logger.debug(f"Claim id {candidate} already used, generating another")
        return f"CLM-{uuid.uuid4().hex.upper()}"

    # Public API

    def record_submission(
        self,
        draft: ClaimDraft,
        document: ClaimDocument,
        extracted_text: str,
        classification: Classification
    ) -> ClaimRecord:
        """
        Build the claim record for a finished submission and persist it.

        The record replaces whatever is in the current-claim slot and is
        prepended to the claim history.

        Args:
            draft: Operator-entered fields
            document: The uploaded document (name and size are kept)
            extracted_text: Output of the extraction pipeline, may be empty
            classification: Model or fallback determination

        Returns:
            The stored ClaimRecord

        Raises:
            StorageError: If the history could not be saved; the current slot is left unchanged
        """
        self.last_error = None
        history = self._history_entries()
        taken = {entry.get("id") for entry in history if isinstance(entry, dict)}

        now = self.clock()
        record = ClaimRecord(
            id=self._unique_id(taken),
            patient_name=draft.patient_name.strip(),
            patient_age=draft.patient_age.strip(),
            claim_amount=draft.claim_amount.strip(),
            claim_description=(draft.claim_description or "").strip(),
            file_name=document.filename,
            file_size=document.size,
            extracted_text=extracted_text or "",
            is_fraud=classification.is_fraud,
            confidence_score=classification.confidence_score,
            reasons=tuple(classification.reasons),
            suggested_actions=tuple(classification.suggested_actions),
            date=now.astimezone(timezone.utc).date().isoformat(),
            submitted_at=_timestamp(now),
            is_fallback=classification.is_fallback,
        )

        payload = record.to_dict()
        history.insert(0, payload)
        if self.max_history is not None and len(history) > self.max_history:
            logger.info(f"Trimming claim history to {self.max_history} entries")
            history = history[:self.max_history]

        # History first: the current slot never points at an unsaved claim
        try:
            self.durable.set(HISTORY_KEY, json.dumps(history))
        except OSError as e:
            logger.error(f"Failed to save claim {record.id} to history: {str(e)}")
            raise StorageError.write_failed(HISTORY_KEY, e) from e
        self.ephemeral.set(CURRENT_CLAIM_KEY, json.dumps(payload))

        logger.info(
            f"Recorded claim {record.id}: is_fraud={record.is_fraud}, "
            f"confidence={record.confidence_score}, fallback={record.is_fallback}"
        )
        return record

    def load_current(self) -> Optional[ClaimRecord]:
        """
        Return the most recent submission of this session.

        Returns:
            The current ClaimRecord, or None when nothing was submitted in
            this session or the slot holds malformed data
        """
        self.last_error = None
        try:
            data = self._read_json(self.ephemeral, CURRENT_CLAIM_KEY)
            if data is None:
                return None
            return ClaimRecord.from_dict(data)
        except StorageError as e:
            self._note_error(e)
        except (KeyError, TypeError, ValueError) as e:
            self._note_error(StorageError.corrupted(CURRENT_CLAIM_KEY, e))
        return None

    def load_history(self, limit: int) -> List[ClaimRecord]:
        """
        Return up to ``limit`` claims, most recent first.

        Malformed entries are skipped; an unreadable list yields [].
        """
        self.last_error = None
        if limit <= 0:
            return []

        records: List[ClaimRecord] = []
        for entry in self._history_entries():
            try:
                records.append(ClaimRecord.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed claim history entry: {str(e)}")
                continue
            if len(records) >= limit:
                break
        return records

    def clear_current(self) -> None:
        self.ephemeral.delete(CURRENT_CLAIM_KEY)

    def history_stats(self) -> Dict[str, Any]:
        """Counts over the whole history for the dashboard tiles."""
        self.last_error = None
        analyzed = fraud = 0
        for entry in self._history_entries():
            if not isinstance(entry, dict) or "isFraud" not in entry:
                continue
            analyzed += 1
            if entry.get("isFraud") is True:
                fraud += 1

        return {
            "analyzed": analyzed,
            "fraud_detected": fraud,
            "verified": analyzed - fraud,
            "detection_rate": round(100 * fraud / analyzed) if analyzed else 0,
        }
