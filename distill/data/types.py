"""
Type definitions for project data.

Defines the authored examples and the human review records that feed the
retraining loop. On-disk JSON uses camelCase keys.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any


@dataclass(frozen=True)
class Example:
    """An authored (input, output) training pair."""
    id: str
    input: str
    output: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "input": self.input, "output": self.output}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Example':
        return cls(id=str(data["id"]), input=data["input"], output=data["output"])


@dataclass
class ReviewItem:
    """
    A model prediction awaiting or carrying a human verdict.

    ``id`` mirrors the example the prediction was made for. An item without
    ``reviewed_at`` has not been reviewed yet and carries no training signal.
    """
    id: str
    input: str
    predicted_output: str
    approved: bool = False
    corrected_output: Optional[str] = None
    reviewed_at: Optional[str] = None

    @property
    def is_reviewed(self) -> bool:
        return bool(self.reviewed_at)

    @property
    def has_correction(self) -> bool:
        return bool(self.corrected_output and self.corrected_output.strip())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "input": self.input,
            "predictedOutput": self.predicted_output,
            "approved": self.approved,
        }
        if self.corrected_output is not None:
            data["correctedOutput"] = self.corrected_output
        if self.reviewed_at is not None:
            data["reviewedAt"] = self.reviewed_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReviewItem':
        return cls(
            id=str(data["id"]),
            input=data["input"],
            predicted_output=data["predictedOutput"],
            approved=bool(data.get("approved", False)),
            corrected_output=data.get("correctedOutput"),
            reviewed_at=data.get("reviewedAt"),
        )
