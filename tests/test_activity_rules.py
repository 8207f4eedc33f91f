from datetime import datetime, timedelta

import pytest

from leadengine.domain.activity import derive_interests, parse_activity_type, points_for
from leadengine.domain.errors import ValidationError
from leadengine.domain.types import ActivityEvent, ActivityType, PropertyFacts

NOW = datetime(2026, 3, 10, 12, 0, 0)


def test_parse_activity_type_is_case_insensitive():
    assert parse_activity_type("view") == ActivityType.VIEW
    assert parse_activity_type(" contact_form ") == ActivityType.CONTACT_FORM
    assert parse_activity_type(ActivityType.SEARCH) == ActivityType.SEARCH


@pytest.mark.parametrize("raw", ["", "CLICK", None, 3])
def test_parse_activity_type_rejects_unknown(raw):
    with pytest.raises(ValidationError):
        parse_activity_type(raw)


def test_points_table():
    assert points_for(ActivityType.VIEW) == 2
    assert points_for(ActivityType.PHONE_CALL) == 25


def test_derive_interests_merges_search_and_properties():
    props = {
        1: PropertyFacts(id=1, city="Marina", property_type="villa", price=1.0),
        2: PropertyFacts(id=2, city="Downtown", property_type="apartment", price=1.0),
    }
    events = [
        ActivityEvent("l1", ActivityType.SEARCH, NOW, 1, metadata={"location": "downtown", "property_type": "Villa"}),
        ActivityEvent("l1", ActivityType.VIEW, NOW + timedelta(minutes=1), 2, property_id=1),
        ActivityEvent("l1", ActivityType.FAVORITE, NOW + timedelta(minutes=2), 5, property_id=2),
        ActivityEvent("l1", ActivityType.EMAIL_OPEN, NOW + timedelta(minutes=3), 3, property_id=2),
    ]

    locations, types = derive_interests(events, props, locations=["Hills"])

    # existing values first, then first spelling seen wins
    assert locations == ["Hills", "downtown", "Marina"]
    assert types == ["Villa", "apartment"]
