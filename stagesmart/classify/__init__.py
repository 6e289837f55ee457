"""Room-type classification from free-text vision output."""

from .rooms import DEFAULT_ROOM, ROOM_INSTRUCTION, ROOM_LABELS, RoomLabel, classify, parse_room
from .vision import GeminiVisionClient, RoomClassifier, VisionClientProtocol

__all__ = [
    "DEFAULT_ROOM",
    "ROOM_INSTRUCTION",
    "ROOM_LABELS",
    "RoomLabel",
    "classify",
    "parse_room",
    "GeminiVisionClient",
    "RoomClassifier",
    "VisionClientProtocol",
]
