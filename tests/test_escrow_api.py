from decimal import Decimal

import pytest
from sqlalchemy import select

from app.models import (
    EscrowStatus,
    JobPaymentStatus,
    JobStatus,
    MilestoneStatus,
    PayoutItem,
    PayoutItemStatus,
    PayoutKind,
    ReleaseSource,
)
from app.services import ledger
from app.services.escrow import split_fee
from app.services.ledger import Actor
from app.utils.errors import IllegalTransition


@pytest.fixture
def funded(make_user, make_job, fund_job, headers_for):
    client_user = make_user()
    freelancer = make_user()
    job = make_job(client_user)
    escrow = fund_job(job, freelancer)
    return {
        "escrow": escrow,
        "job": job,
        "client": client_user,
        "freelancer": freelancer,
        "client_headers": headers_for(client_user),
        "freelancer_headers": headers_for(freelancer),
    }


def test_split_fee_rounds_half_up():
    assert split_fee(Decimal("1000.00"), Decimal("10")) == (Decimal("100.00"), Decimal("900.00"))
    assert split_fee(Decimal("333.33"), Decimal("10")) == (Decimal("33.33"), Decimal("300.00"))
    assert split_fee(Decimal("0.05"), Decimal("10")) == (Decimal("0.01"), Decimal("0.04"))
    assert split_fee(Decimal("0"), Decimal("10")) == (Decimal("0.00"), Decimal("0.00"))


def test_split_fee_rejects_negative_amounts():
    with pytest.raises(ValueError):
        split_fee(Decimal("-1"), Decimal("10"))


@pytest.mark.anyio
async def test_client_release_queues_outstanding_net(client, db_session, funded):
    escrow = funded["escrow"]

    response = await client.post(
        f"/escrows/{escrow.id}/release", json={"note": "great work"}, headers=funded["client_headers"]
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "released"
    assert body["release_source"] == ReleaseSource.CLIENT.value
    assert [m["status"] for m in body["milestones"]] == ["cancelled"]

    [item] = db_session.scalars(select(PayoutItem).where(PayoutItem.escrow_id == escrow.id)).all()
    assert item.kind == PayoutKind.RELEASE
    assert item.amount == Decimal("900.00")
    assert item.status == PayoutItemStatus.PENDING
    db_session.refresh(funded["job"])
    assert funded["job"].status == JobStatus.COMPLETED


@pytest.mark.anyio
async def test_release_is_client_only(client, funded, make_user, headers_for):
    escrow = funded["escrow"]

    as_freelancer = await client.post(f"/escrows/{escrow.id}/release", headers=funded["freelancer_headers"])
    assert as_freelancer.status_code == 403

    stranger = make_user()
    as_stranger = await client.post(f"/escrows/{escrow.id}/release", headers=headers_for(stranger))
    assert as_stranger.status_code == 403


@pytest.mark.anyio
async def test_release_twice_is_an_illegal_transition(client, funded):
    escrow = funded["escrow"]
    await client.post(f"/escrows/{escrow.id}/release", headers=funded["client_headers"])

    again = await client.post(f"/escrows/{escrow.id}/release", headers=funded["client_headers"])

    assert again.status_code == 409
    assert again.json()["error"]["code"] == "ILLEGAL_TRANSITION"


@pytest.mark.anyio
async def test_refund_before_any_submission(client, db_session, funded):
    escrow = funded["escrow"]

    response = await client.post(f"/escrows/{escrow.id}/refund", headers=funded["client_headers"])

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "refunded"
    assert response.json()["outstanding"] == "0.00"
    job = funded["job"]
    db_session.refresh(job)
    assert job.status == JobStatus.CANCELLED
    assert job.payment_status == JobPaymentStatus.REFUNDED


@pytest.mark.anyio
async def test_refund_after_submission_is_refused(client, funded):
    escrow = funded["escrow"]
    milestone_id = escrow.milestones[0].id
    submitted = await client.post(
        f"/milestones/{milestone_id}/submit",
        json={"submission_ref": "https://files.example.com/logo.zip"},
        headers=funded["freelancer_headers"],
    )
    assert submitted.status_code == 200

    response = await client.post(f"/escrows/{escrow.id}/refund", headers=funded["client_headers"])

    assert response.status_code == 409
    assert "dispute" in response.json()["error"]["message"]


@pytest.mark.anyio
async def test_escrow_visibility_is_limited_to_parties(client, funded, make_user, headers_for, service_headers):
    escrow = funded["escrow"]
    stranger_headers = headers_for(make_user())

    own = await client.get(f"/escrows/{escrow.id}", headers=funded["freelancer_headers"])
    assert own.status_code == 200
    assert own.json()["net_amount"] == "900.00"
    assert own.json()["paid_out"] == "0.00"
    assert own.json()["outstanding"] == "900.00"

    other = await client.get(f"/escrows/{escrow.id}", headers=stranger_headers)
    assert other.status_code == 403

    listed = await client.get("/escrows", headers=stranger_headers)
    assert listed.json() == []

    service = await client.get("/escrows", params={"status": "held"}, headers=service_headers)
    assert escrow.id in [row["id"] for row in service.json()]

    missing = await client.get("/escrows/999999", headers=funded["client_headers"])
    assert missing.status_code == 404


@pytest.mark.anyio
async def test_requests_without_key_are_unauthorized(client, funded):
    response = await client.get(f"/escrows/{funded['escrow'].id}")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "NO_API_KEY"

    bogus = await client.get("/escrows", headers={"Authorization": "Bearer tw_nope.nope"})
    assert bogus.status_code == 401


@pytest.mark.anyio
async def test_event_timeline_records_transitions(client, funded):
    escrow = funded["escrow"]
    await client.post(f"/escrows/{escrow.id}/release", headers=funded["client_headers"])

    response = await client.get(f"/escrows/{escrow.id}/events", headers=funded["client_headers"])

    kinds = [event["kind"] for event in response.json()]
    assert kinds[0] == "HELD"
    assert "STATUS_RELEASED" in kinds


def test_illegal_transition_leaves_escrow_untouched(db_session, funded):
    escrow = funded["escrow"]
    with ledger.unit_of_work(db_session):
        ledger.update_escrow_status(db_session, escrow, EscrowStatus.REFUNDED, actor=Actor.system())

    with pytest.raises(IllegalTransition):
        with ledger.unit_of_work(db_session):
            ledger.update_escrow_status(db_session, escrow, EscrowStatus.HELD, actor=Actor.system())

    db_session.refresh(escrow)
    assert escrow.status == EscrowStatus.REFUNDED


def test_release_requires_a_source(db_session, funded):
    escrow = funded["escrow"]
    with pytest.raises(IllegalTransition):
        ledger.update_escrow_status(db_session, escrow, EscrowStatus.RELEASED, actor=Actor.system())
    assert escrow.status == EscrowStatus.HELD


def test_no_payout_item_for_frozen_escrow(db_session, funded):
    escrow = funded["escrow"]
    escrow.status = EscrowStatus.DISPUTED

    with pytest.raises(IllegalTransition):
        ledger.append_payout_item(
            db_session, escrow=escrow, milestone=None, amount=Decimal("10.00"), kind=PayoutKind.RELEASE
        )
    db_session.rollback()


def test_milestone_statuses_after_funding(funded):
    statuses = [m.status for m in funded["escrow"].milestones]
    assert statuses == [MilestoneStatus.IN_PROGRESS]
