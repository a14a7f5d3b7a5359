"""Claim input, classification, and persisted record data models."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


def clamp_confidence(value: Any) -> int:
    """
    Coerce a confidence score to an integer in [0, 100].

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, bool):
        raise ValueError(f"confidence score must be numeric, got {value!r}")
    score = float(value)
    if math.isnan(score):
        raise ValueError("confidence score must be numeric, got NaN")
    if math.isinf(score):
        return 100 if score > 0 else 0
    return max(0, min(100, int(round(score))))


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"isFraud must be a boolean, got {value!r}")


def _as_str_list(value: Any, key: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{key} must be a list of strings")
    return tuple(str(item) for item in value)


@dataclass
class ClaimDraft:
    """
    Operator-entered fields from the upload form.

    Attributes:
        patient_name: Patient full name
        patient_age: Age as typed (validated as numeric)
        claim_amount: Amount as typed, may include "$" and ","
        claim_description: Optional free-text description
    """
    patient_name: str
    patient_age: str
    claim_amount: str
    claim_description: str = ""


@dataclass
class ClaimDocument:
    """An uploaded claim document held in memory."""
    filename: str
    content: bytes
    content_type: str = "application/pdf"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class Classification:
    """
    Fraud determination for one claim document.

    Attributes:
        is_fraud: Whether the claim is judged fraudulent
        confidence_score: Integer confidence, clamped to [0, 100]
        reasons: Ordered reasons supporting the determination
        suggested_actions: Ordered follow-up actions
        is_fallback: True when produced without the model (degraded mode)
    """
    is_fraud: bool
    confidence_score: int
    reasons: List[str] = field(default_factory=list)
    suggested_actions: List[str] = field(default_factory=list)
    is_fallback: bool = False

    def __post_init__(self):
        self.confidence_score = clamp_confidence(self.confidence_score)
        self.reasons = list(self.reasons or [])
        self.suggested_actions = list(self.suggested_actions or [])

    @classmethod
    def from_model_output(cls, data: Dict[str, Any]) -> "Classification":
        """
        Build a classification from the model's JSON answer.

        Raises:
            ValueError: If a required key is missing or has the wrong type
        """
        if "isFraud" not in data:
            raise ValueError("missing key 'isFraud'")
        if "confidenceScore" not in data:
            raise ValueError("missing key 'confidenceScore'")
        try:
            confidence = clamp_confidence(data["confidenceScore"])
        except (TypeError, ValueError) as e:
            raise ValueError(f"invalid confidenceScore: {e}") from e
        return cls(
            is_fraud=_as_bool(data["isFraud"]),
            confidence_score=confidence,
            reasons=list(_as_str_list(data.get("reasons"), "reasons")),
            suggested_actions=list(_as_str_list(data.get("suggestedActions"), "suggestedActions")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isFraud": self.is_fraud,
            "confidenceScore": self.confidence_score,
            "reasons": list(self.reasons),
            "suggestedActions": list(self.suggested_actions),
            "isFallback": self.is_fallback,
        }


@dataclass(frozen=True)
class ClaimRecord:
    """
    The unit persisted and displayed for one submission. Never mutated.

    Attributes:
        id: Identifier unique within the claim history (CLM-XXXXXXXX)
        date: Submission date, YYYY-MM-DD
        submitted_at: Submission timestamp, ISO-8601 UTC
    """
    id: str
    patient_name: str
    patient_age: str
    claim_amount: str
    claim_description: str
    file_name: str
    file_size: int
    extracted_text: str
    is_fraud: bool
    confidence_score: int
    reasons: Tuple[str, ...]
    suggested_actions: Tuple[str, ...]
    date: str
    submitted_at: str
    is_fallback: bool = False

    @property
    def submitted_datetime(self) -> Optional[datetime]:
        try:
            return datetime.fromisoformat(self.submitted_at.replace("Z", "+00:00"))
        except ValueError:
            return None

    @property
    def display_date(self) -> str:
        """Human-readable date, e.g. 'May 14, 2025'."""
        moment = self.submitted_datetime
        if moment is None:
            return self.date
        return f"{moment.strftime('%b')} {moment.day}, {moment.year}"

    @property
    def primary_reason(self) -> str:
        return self.reasons[0] if self.reasons else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patientName": self.patient_name,
            "patientAge": self.patient_age,
            "claimAmount": self.claim_amount,
            "claimDescription": self.claim_description,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "extractedText": self.extracted_text,
            "isFraud": self.is_fraud,
            "confidenceScore": self.confidence_score,
            "reasons": list(self.reasons),
            "suggestedActions": list(self.suggested_actions),
            "date": self.date,
            "submittedAt": self.submitted_at,
            "isFallback": self.is_fallback,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClaimRecord":
        """
        Rebuild a record from its serialized form.

        Raises:
            KeyError, TypeError, ValueError: If the data is malformed
        """
        if not isinstance(data, dict):
            raise TypeError(f"claim record must be an object, got {type(data).__name__}")
        return cls(
            id=str(data["id"]),
            patient_name=str(data["patientName"]),
            patient_age=str(data.get("patientAge", "")),
            claim_amount=str(data.get("claimAmount", "")),
            claim_description=str(data.get("claimDescription", "")),
            file_name=str(data.get("fileName", "")),
            file_size=int(data.get("fileSize", 0)),
            extracted_text=str(data.get("extractedText", "")),
            is_fraud=_as_bool(data["isFraud"]),
            confidence_score=clamp_confidence(data.get("confidenceScore", 0)),
            reasons=_as_str_list(data.get("reasons"), "reasons"),
            suggested_actions=_as_str_list(data.get("suggestedActions"), "suggestedActions"),
            date=str(data.get("date", "")),
            submitted_at=str(data["submittedAt"]),
            is_fallback=bool(data.get("isFallback", False)),
        )
