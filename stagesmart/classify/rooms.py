from __future__ import annotations

from enum import Enum
from typing import Optional


class RoomLabel(str, Enum):
    LIVING_ROOM = "Living Room"
    KITCHEN = "Kitchen"
    BEDROOM = "Bedroom"
    BATHROOM = "Bathroom"
    DINING_ROOM = "Dining Room"
    EXTERIOR = "Exterior"
    BACKYARD = "Backyard"
    OTHER = "Other"

    def __str__(self) -> str:
        return self.value


# Earlier entries win when the text contains several labels.
ROOM_LABELS: tuple[RoomLabel, ...] = tuple(RoomLabel)
DEFAULT_ROOM = RoomLabel.OTHER

ROOM_INSTRUCTION = (
    "What type of room is this? Reply with ONLY ONE of: "
    + ", ".join(label.value for label in ROOM_LABELS)
)


def classify(raw_text: Optional[str]) -> RoomLabel:
    """Map free-form vision output onto the first canonical label it contains."""

    if not raw_text:
        return DEFAULT_ROOM
    for label in ROOM_LABELS:
        if label.value in raw_text:
            return label
    return DEFAULT_ROOM


def parse_room(value: Optional[str]) -> RoomLabel | None:
    """Resolve a caller-supplied room name; ``None`` when it is not canonical."""

    if not value:
        return None
    for label in ROOM_LABELS:
        if value.strip().lower() == label.value.lower():
            return label
    return None


__all__ = ["RoomLabel", "ROOM_LABELS", "DEFAULT_ROOM", "ROOM_INSTRUCTION", "classify", "parse_room"]
