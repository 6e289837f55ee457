from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from .classify.rooms import RoomLabel

DEFAULT_STYLE = "Modern"
TWILIGHT_STYLE = "Twilight"
UPDATE_KEYS: tuple[str, ...] = ("paint", "counters", "floors")
_OUTDOOR_ROOMS = {RoomLabel.EXTERIOR, RoomLabel.BACKYARD}


@dataclass(frozen=True)
class StagingOptions:
    style: str = DEFAULT_STYLE
    room: RoomLabel | None = None
    updates: Mapping[str, str] = field(default_factory=dict)


def _update_clauses(updates: Mapping[str, str]) -> list[str]:
    clauses: list[str] = []
    for key in UPDATE_KEYS:
        value = updates.get(key)
        if not isinstance(value, str) or not value.strip():
            continue
        clauses.append(f"{value.strip().lower()} {key}")
    return clauses


def compose_prompt(options: StagingOptions) -> str:
    """Build the staging instruction sent to the engines from structured options."""

    style = (options.style or DEFAULT_STYLE).strip() or DEFAULT_STYLE
    room = options.room.value if options.room else "room"

    if style.lower() == TWILIGHT_STYLE.lower() and options.room in _OUTDOOR_ROOMS:
        prompt = "Day to realistic twilight exterior, green grass, warm lights, MLS photo"
    else:
        prompt = (
            f"Photoreal {style.lower()} virtual staging real estate {room}, "
            "add furniture keeping architecture exact, MLS photo."
        )

    clauses = _update_clauses(options.updates or {})
    if clauses:
        prompt += " + " + " + ".join(clauses) + "."
    return prompt


__all__ = ["DEFAULT_STYLE", "TWILIGHT_STYLE", "UPDATE_KEYS", "StagingOptions", "compose_prompt"]
