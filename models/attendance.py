"""
Attendance Event Model

The record created exactly once per successful submission.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"


@dataclass(frozen=True)
class AttendanceEvent:
    """
    Immutable attendance event.

    Attributes:
        principal: Owning principal id
        captured_descriptor: Fixed-length face descriptor from the detector
        confidence_score: Detector confidence (0-1)
        image_reference: Retrieval URL of the captured frame, or None if storage failed
        status: present / absent
        submission_id: Idempotency key for the record store
        timestamp: Creation time (UTC)
    """
    principal: str
    captured_descriptor: Tuple[float, ...]
    confidence_score: float
    submission_id: str
    image_reference: Optional[str] = None
    status: AttendanceStatus = AttendanceStatus.PRESENT
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict:
        return {
            'principal': self.principal,
            'submission_id': self.submission_id,
            'confidence_score': self.confidence_score,
            'image_reference': self.image_reference,
            'status': self.status.value,
            'timestamp': self.timestamp.isoformat(),
            'descriptor_length': len(self.captured_descriptor)
        }
