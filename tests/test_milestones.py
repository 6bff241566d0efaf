from datetime import timedelta
from decimal import Decimal

import pytest

from app.models import MilestoneStatus
from app.services import ledger
from app.services.milestones import draft_plan
from app.utils.time import utcnow

THREE_STEP_PLAN = [
    {"description": "Wireframes", "percentage": "30"},
    {"description": "Visual design", "percentage": "30"},
    {"description": "Final files", "percentage": "40"},
]


@pytest.fixture
def staged(make_user, make_job, fund_job, headers_for):
    client_user = make_user()
    freelancer = make_user()
    job = make_job(client_user, plan=THREE_STEP_PLAN)
    escrow = fund_job(job, freelancer)
    return {
        "escrow": escrow,
        "milestones": list(escrow.milestones),
        "client_headers": headers_for(client_user),
        "freelancer_headers": headers_for(freelancer),
    }


def test_draft_plan_defaults_to_single_milestone():
    drafts, flagged = draft_plan(None, Decimal("900.00"), max_revisions=3)

    assert flagged is False
    assert len(drafts) == 1
    assert drafts[0].percentage == Decimal("100.00")
    assert drafts[0].amount == Decimal("900.00")
    assert drafts[0].status == MilestoneStatus.IN_PROGRESS


def test_draft_plan_last_share_absorbs_rounding():
    plan = [{"percentage": "33.33"}, {"percentage": "33.33"}, {"percentage": "33.34"}]

    drafts, flagged = draft_plan(plan, Decimal("100.00"), max_revisions=2)

    assert flagged is False
    assert [d.amount for d in drafts] == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
    assert [d.status for d in drafts] == [
        MilestoneStatus.IN_PROGRESS,
        MilestoneStatus.PENDING,
        MilestoneStatus.PENDING,
    ]
    assert drafts[1].description == "Milestone 2"
    assert all(d.max_revisions == 2 for d in drafts)


@pytest.mark.parametrize("percentages", [["50", "49"], ["50", "51"]])
def test_draft_plan_flags_plans_not_summing_to_100(percentages):
    plan = [{"percentage": pct} for pct in percentages]

    drafts, flagged = draft_plan(plan, Decimal("900.00"), max_revisions=3)

    assert flagged is True
    assert [d.amount for d in drafts] == [Decimal("450.00"), Decimal(percentages[1]) * 9]


def test_funded_plan_splits_net_amount(staged):
    milestones = staged["milestones"]
    assert [m.amount for m in milestones] == [Decimal("270.00"), Decimal("270.00"), Decimal("360.00")]
    assert [m.status for m in milestones] == [
        MilestoneStatus.IN_PROGRESS,
        MilestoneStatus.PENDING,
        MilestoneStatus.PENDING,
    ]


@pytest.mark.anyio
async def test_submit_revise_resubmit_approve(client, staged):
    first, second, _ = staged["milestones"]
    freelancer, client_headers = staged["freelancer_headers"], staged["client_headers"]

    submitted = await client.post(
        f"/milestones/{first.id}/submit", json={"submission_ref": "v1.zip"}, headers=freelancer
    )
    assert submitted.json()["status"] == "submitted"
    assert submitted.json()["revision_count"] == 0

    revised = await client.post(
        f"/milestones/{first.id}/request-revision", json={"notes": "bigger logo"}, headers=client_headers
    )
    assert revised.json()["status"] == "in_progress"
    assert revised.json()["client_notes"] == "bigger logo"

    resubmitted = await client.post(
        f"/milestones/{first.id}/submit", json={"submission_ref": "v2.zip"}, headers=freelancer
    )
    assert resubmitted.json()["revision_count"] == 1

    approved = await client.post(f"/milestones/{first.id}/approve", headers=client_headers)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"

    nxt = await client.get(f"/milestones/{second.id}", headers=freelancer)
    assert nxt.json()["status"] == "in_progress"


@pytest.mark.anyio
async def test_revision_limit_is_enforced(client, db_session, staged):
    first = staged["milestones"][0]
    first.max_revisions = 1
    db_session.commit()
    freelancer, client_headers = staged["freelancer_headers"], staged["client_headers"]

    await client.post(f"/milestones/{first.id}/submit", json={"submission_ref": "v1"}, headers=freelancer)
    await client.post(f"/milestones/{first.id}/request-revision", json={}, headers=client_headers)
    await client.post(f"/milestones/{first.id}/submit", json={"submission_ref": "v2"}, headers=freelancer)

    blocked = await client.post(f"/milestones/{first.id}/request-revision", json={}, headers=client_headers)

    assert blocked.status_code == 409
    assert blocked.json()["error"]["message"] == "Revision limit reached."


@pytest.mark.anyio
async def test_only_the_right_side_moves_a_milestone(client, staged):
    first = staged["milestones"][0]

    by_client = await client.post(
        f"/milestones/{first.id}/submit", json={"submission_ref": "x"}, headers=staged["client_headers"]
    )
    assert by_client.status_code == 403

    await client.post(
        f"/milestones/{first.id}/submit", json={"submission_ref": "x"}, headers=staged["freelancer_headers"]
    )
    by_freelancer = await client.post(f"/milestones/{first.id}/approve", headers=staged["freelancer_headers"])
    assert by_freelancer.status_code == 403


@pytest.mark.anyio
async def test_pending_milestone_cannot_be_submitted(client, staged):
    second = staged["milestones"][1]

    response = await client.post(
        f"/milestones/{second.id}/submit", json={"submission_ref": "early"}, headers=staged["freelancer_headers"]
    )

    assert response.status_code == 409
    assert response.json()["error"]["details"]["allowed"] == ["in_progress"]


@pytest.mark.anyio
async def test_approval_makes_milestone_releasable(client, db_session, staged):
    first = staged["milestones"][0]
    await client.post(
        f"/milestones/{first.id}/submit", json={"submission_ref": "x"}, headers=staged["freelancer_headers"]
    )
    await client.post(f"/milestones/{first.id}/approve", headers=staged["client_headers"])

    releasable = ledger.list_releasable(db_session, utcnow())

    assert [(r.milestone.id, r.amount) for r in releasable] == [(first.id, Decimal("270.00"))]


def test_future_due_date_defers_release(db_session, make_user, make_job, fund_job):
    due = (utcnow() + timedelta(days=3)).isoformat()
    client_user, freelancer = make_user(), make_user()
    job = make_job(client_user, plan=[{"description": "All", "percentage": "100", "due_date": due}])
    escrow = fund_job(job, freelancer)
    milestone = escrow.milestones[0]
    milestone.status = MilestoneStatus.APPROVED
    db_session.commit()

    assert ledger.list_releasable(db_session, utcnow()) == []
    later = ledger.list_releasable(db_session, utcnow() + timedelta(days=4))
    assert [r.milestone.id for r in later] == [milestone.id]


@pytest.mark.anyio
async def test_flagged_plan_is_held_back_until_corrected(
    client, db_session, make_user, make_job, fund_job, headers_for
):
    operator_headers = headers_for(make_user(is_operator=True))
    client_user, freelancer = make_user(), make_user()
    job = make_job(client_user, plan=[{"percentage": "50"}, {"percentage": "51"}])
    escrow = fund_job(job, freelancer)
    assert escrow.plan_flagged is True

    first = escrow.milestones[0]
    first.status = MilestoneStatus.APPROVED
    db_session.commit()
    assert ledger.list_releasable(db_session, utcnow()) == []

    refused = await client.post(
        f"/operator/escrows/{escrow.id}/milestone-plan",
        json={"percentages": ["50", "50"]},
        headers=headers_for(client_user),
    )
    assert refused.status_code == 403

    wrong_length = await client.post(
        f"/operator/escrows/{escrow.id}/milestone-plan", json={"percentages": ["100"]}, headers=operator_headers
    )
    assert wrong_length.status_code == 422

    corrected = await client.post(
        f"/operator/escrows/{escrow.id}/milestone-plan",
        json={"percentages": ["50", "50"]},
        headers=operator_headers,
    )
    assert corrected.status_code == 200, corrected.text
    assert corrected.json()["plan_flagged"] is False

    db_session.refresh(first)
    assert first.amount == Decimal("450.00")
    assert [r.milestone.id for r in ledger.list_releasable(db_session, utcnow())] == [first.id]
