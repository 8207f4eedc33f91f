from __future__ import annotations

from typing import Any, Iterable, Mapping

from .errors import ValidationError
from .types import ActivityEvent, ActivityType, PropertyFacts


# Fixed points recorded on each event, by type
ACTIVITY_POINTS: dict[ActivityType, int] = {
    ActivityType.VIEW: 2,
    ActivityType.INQUIRY: 15,
    ActivityType.CONTACT_FORM: 20,
    ActivityType.FAVORITE: 5,
    ActivityType.SEARCH: 1,
    ActivityType.RETURN_VISIT: 8,
    ActivityType.PHONE_CALL: 25,
    ActivityType.EMAIL_OPEN: 3,
    ActivityType.BROCHURE_DOWNLOAD: 10,
}

# Events whose property reference says something about what the lead wants
_INTEREST_TYPES = {ActivityType.VIEW, ActivityType.INQUIRY, ActivityType.FAVORITE}


def parse_activity_type(raw: Any) -> ActivityType:
    if isinstance(raw, ActivityType):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError(f"Invalid activity type: {raw!r}")
    try:
        return ActivityType(raw.strip().upper())
    except ValueError:
        raise ValidationError(f"Invalid activity type: {raw!r}") from None


def points_for(activity_type: ActivityType) -> int:
    return ACTIVITY_POINTS.get(activity_type, 0)


def _merge(existing: Iterable[str], new: Iterable[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for v in list(existing) + list(new):
        if not isinstance(v, str):
            continue
        s = v.strip()
        if not s or s.lower() in seen:
            continue
        seen.add(s.lower())
        out.append(s)
    return out


def derive_interests(
    events: Iterable[ActivityEvent],
    properties: Mapping[int, PropertyFacts],
    *,
    locations: Iterable[str] = (),
    property_types: Iterable[str] = (),
) -> tuple[list[str], list[str]]:
    """
    Returns (location_interests, property_type_interests).

    Sources, in order of first appearance after the existing values:
      - SEARCH metadata: "location", "property_type"
      - city / property_type of properties the lead viewed, inquired about or saved
    Comparison is case-insensitive; the first spelling seen wins.
    """
    found_locations: list[str] = []
    found_types: list[str] = []

    ordered = sorted(
        events,
        key=lambda e: (e.occurred_at, e.activity_type.value, e.property_id or 0, repr(sorted((e.metadata or {}).items()))),
    )
    for ev in ordered:
        meta = ev.metadata or {}
        if ev.activity_type == ActivityType.SEARCH:
            if meta.get("location"):
                found_locations.append(str(meta["location"]))
            if meta.get("property_type"):
                found_types.append(str(meta["property_type"]))
        elif ev.activity_type in _INTEREST_TYPES and ev.property_id is not None:
            prop = properties.get(ev.property_id)
            if prop is None:
                continue
            if prop.city:
                found_locations.append(prop.city)
            if prop.property_type:
                found_types.append(prop.property_type)

    return _merge(locations, found_locations), _merge(property_types, found_types)
