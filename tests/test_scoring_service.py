import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from leadengine.domain.errors import LeadNotFound, ValidationError
from leadengine.domain.types import LeadGrade
from leadengine.models import ContactSubmission, Lead, LeadActivity, Property
from leadengine.service_layer import scoring as scoring_service
from leadengine.service_layer.activity import record_activity
from leadengine.service_layer.scoring import get_score, list_lead_scores, recalculate_scores

NOW = datetime(2026, 3, 10, 12, 0, 0)


@pytest.mark.asyncio
async def test_record_activity_creates_lead_and_scores(uow_factory):
    async with uow_factory() as uow:
        rec = await record_activity(
            uow,
            "lead-1",
            "view",
            {"email": "ann@example.com", "name": "Ann"},
            occurred_at=NOW - timedelta(hours=1),
            now=NOW,
        )

    assert rec.lead_created is True
    assert rec.event.id is not None
    assert rec.event.points == 2
    assert rec.score.score == 22
    assert rec.score.grade == LeadGrade.COLD

    async with uow_factory() as uow:
        p = await uow.leads.get_profile("lead-1")
        n = (await uow.session.execute(select(func.count()).select_from(LeadActivity))).scalar_one()

    assert p is not None
    assert p.score == 22
    assert p.email == "ann@example.com"
    assert p.last_activity_at == NOW - timedelta(hours=1)
    assert n == 1


@pytest.mark.asyncio
async def test_second_event_reuses_lead(uow_factory):
    async with uow_factory() as uow:
        await record_activity(uow, "lead-1", "VIEW", occurred_at=NOW - timedelta(minutes=70), now=NOW)
    async with uow_factory() as uow:
        rec = await record_activity(uow, "lead-1", "INQUIRY", occurred_at=NOW - timedelta(hours=1), now=NOW)

    assert rec.lead_created is False
    # view 2 + inquiry 15 + one session 5 + days active 1 + recent 15
    assert rec.score.score == 38
    assert rec.score.grade == LeadGrade.WARM


@pytest.mark.asyncio
async def test_record_activity_rejects_bad_input(uow_factory):
    async with uow_factory() as uow:
        with pytest.raises(ValidationError):
            await record_activity(uow, "lead-1", "CLICK")
        with pytest.raises(ValidationError):
            await record_activity(uow, "", "VIEW")
        with pytest.raises(ValidationError):
            await record_activity(uow, "lead-1", "VIEW", property_id="abc")  # type: ignore[arg-type]

    async with uow_factory() as uow:
        assert await uow.leads.get("lead-1") is None


@pytest.mark.asyncio
async def test_interests_budget_and_contact_forms(uow_factory, async_session_maker):
    async with async_session_maker() as session:
        session.add_all(
            [
                Property(id=1, title="Loft", city="Downtown", property_type="apartment", price=400_000),
                Property(id=2, title="Flat", city="Downtown", property_type="apartment", price=450_000),
                ContactSubmission(email="BUYER@example.com", message="call me"),
            ]
        )
        await session.commit()

    t = NOW - timedelta(hours=3)
    async with uow_factory() as uow:
        await record_activity(uow, "lead-1", "VIEW", {"email": "buyer@example.com"}, property_id=1, occurred_at=t, now=NOW)
    async with uow_factory() as uow:
        await record_activity(
            uow, "lead-1", "SEARCH", {"location": "Marina", "property_id": 2}, occurred_at=t + timedelta(minutes=1), now=NOW
        )
    async with uow_factory() as uow:
        rec = await record_activity(uow, "lead-1", "VIEW", property_id=2, occurred_at=t + timedelta(minutes=2), now=NOW)

    assert rec.score.breakdown["contact_forms"] == 20
    assert rec.score.breakdown["budget_match"] == 10

    async with uow_factory() as uow:
        p = await uow.leads.get_profile("lead-1")

    assert p.budget_estimate == 425_000
    assert p.location_interests == ["Downtown", "Marina"]
    assert p.property_type_interests == ["apartment"]
    assert p.serious_buyer is True  # 4 + 20 + 10 + 5 + 1 + 15 = 55, with a contact form


@pytest.mark.asyncio
async def test_contact_form_event_and_submission_count_once(uow_factory, async_session_maker):
    async with async_session_maker() as session:
        session.add(ContactSubmission(email="x@example.com", message="hi"))
        await session.commit()

    async with uow_factory() as uow:
        rec = await record_activity(
            uow, "l1", "CONTACT_FORM", {"email": "x@example.com"}, occurred_at=NOW - timedelta(hours=1), now=NOW
        )

    assert rec.event.points == 20
    assert rec.score.breakdown["contact_forms"] == 20


@pytest.mark.asyncio
async def test_concurrent_events_for_new_lead_are_serialized(uow_factory):
    n = 8

    async def _one(i: int):
        async with uow_factory() as uow:
            return await record_activity(
                uow, "lead-x", "VIEW", {"email": "x@example.com"}, occurred_at=NOW - timedelta(minutes=i + 1), now=NOW
            )

    results = await asyncio.gather(*(_one(i) for i in range(n)))

    assert sum(1 for r in results if r.lead_created) == 1

    async with uow_factory() as uow:
        leads = (await uow.session.execute(select(func.count()).select_from(Lead))).scalar_one()
        events = (
            await uow.session.execute(
                select(func.count()).select_from(LeadActivity).where(LeadActivity.lead_id == "lead-x")
            )
        ).scalar_one()
        stored = await uow.leads.get_profile("lead-x")
        fresh = await get_score(uow, "lead-x", now=NOW)

    assert leads == 1
    assert events == n
    assert stored.score == fresh.score


@pytest.mark.asyncio
async def test_get_score_is_read_only_and_idempotent(uow_factory):
    async with uow_factory() as uow:
        await record_activity(uow, "lead-1", "VIEW", occurred_at=NOW - timedelta(days=10), now=NOW - timedelta(days=10))

    async with uow_factory() as uow:
        a = await get_score(uow, "lead-1", now=NOW)
        b = await get_score(uow, "lead-1", now=NOW)
        stored = await uow.leads.get_profile("lead-1")

    assert a == b
    assert a.breakdown["recent_activity"] == 0
    assert stored.score == 22  # still the value persisted at record time


@pytest.mark.asyncio
async def test_get_score_unknown_lead(uow_factory):
    async with uow_factory() as uow:
        with pytest.raises(LeadNotFound):
            await get_score(uow, "nope")


@pytest.mark.asyncio
async def test_recalculate_skips_failing_leads(uow_factory, monkeypatch):
    for lead_id in ("l1", "l2", "l3"):
        async with uow_factory() as uow:
            await record_activity(uow, lead_id, "VIEW", occurred_at=NOW - timedelta(days=10), now=NOW - timedelta(days=10))

    real_update = scoring_service.update_score

    async def flaky_update(uow, lead_id, **kw):
        if lead_id == "l2":
            raise RuntimeError("boom")
        return await real_update(uow, lead_id, **kw)

    monkeypatch.setattr(scoring_service, "update_score", flaky_update)

    async with uow_factory() as uow:
        res = await recalculate_scores(uow, ["l1", "l2", "l3", "ghost", "l1"], now=NOW)

    assert res.recalculated == 2
    assert res.failed == 2
    assert res.failed_lead_ids == ["l2", "ghost"]

    async with uow_factory() as uow:
        scores = {p.id: p.score for p in await list_lead_scores(uow)}

    # recent-activity bonus dropped for the re-scored leads only
    assert scores == {"l1": 7, "l2": 22, "l3": 7}


@pytest.mark.asyncio
async def test_list_lead_scores_filters(uow_factory, add_leads):
    await add_leads({"l1": 90, "l2": 50, "l3": 10})

    async with uow_factory() as uow:
        ranged = await list_lead_scores(uow, min_score=20, max_score=95)
        top = await list_lead_scores(uow, limit=1)

    assert [p.id for p in ranged] == ["l1", "l2"]
    assert [p.id for p in top] == ["l1"]
