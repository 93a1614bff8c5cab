"""
Guest and upload quota decisions.

Pure functions over an event's capacity configuration and current counts.
A limit of 0 means unlimited. Counts must be validated with ``check_counts``
before evaluation; the evaluators themselves never raise.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class EventConfig:
    """Capacity configuration of one event"""
    max_guests: int = 0
    photo_upload_limit: int = 0

    @classmethod
    def from_model(cls, event) -> "EventConfig":
        return cls(
            max_guests=event.max_guests or 0,
            photo_upload_limit=event.photo_upload_limit or 0,
        )

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "EventConfig":
        """Build from a Firestore event document (camelCase fields)"""
        return cls(
            max_guests=int(data.get("maxGuests") or 0),
            photo_upload_limit=int(data.get("photoUploadLimit", 24) or 0),
        )


def check_counts(*counts: Any) -> None:
    """Reject negative or non-integer counts before they reach an evaluator"""
    for count in counts:
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValueError(f"Invalid quota count: {count!r}")


def can_admit_guest(event, current_guest_count: int, guest_already_member: bool) -> bool:
    """Whether a guest may join (or keep using) the event"""
    if event.max_guests == 0:
        return True
    if guest_already_member:
        # existing guests are never evicted for capacity reasons
        return True
    return current_guest_count < event.max_guests


def can_admit_upload(event, guest_upload_count: int) -> bool:
    """Whether a guest may upload one more photo"""
    if event.photo_upload_limit == 0:
        return True
    return guest_upload_count < event.photo_upload_limit


def remaining_uploads(event, guest_upload_count: int) -> Optional[int]:
    """Photos left for a guest, or None when uploads are unlimited"""
    if event.photo_upload_limit == 0:
        return None
    return max(event.photo_upload_limit - guest_upload_count, 0)
