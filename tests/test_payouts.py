"""Daily payout worker and provider adapters."""
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select

from app.models import (
    EscrowStatus,
    MilestoneStatus,
    Notification,
    PayoutBatch,
    PayoutBatchStatus,
    PayoutItem,
    PayoutItemStatus,
    PayoutKind,
    ReleaseSource,
)
from app.services import ledger
from app.services import milestones as milestones_service
from app.services.ledger import Actor, ActorRole
from app.services.payfast import (
    PayFastPayoutClient,
    PayoutResult,
    SandboxPayoutClient,
    build_payout_payload,
    payout_client_for,
)
from app.services.payouts import NO_BANK_ACCOUNT, run_daily_payouts
from app.services.signature import verify_signature
from app.utils.errors import TransientError
from app.utils.time import utcnow


def _items(db_session, escrow_id: int) -> list[PayoutItem]:
    stmt = select(PayoutItem).where(PayoutItem.escrow_id == escrow_id).order_by(PayoutItem.id)
    return list(db_session.scalars(stmt))


@pytest.fixture
def approved(db_session, make_user, make_job, fund_job):
    """Factory: a funded single-milestone escrow whose milestone is approved."""

    def _factory(*, freelancer=None, with_account=None):
        client_user = make_user()
        freelancer = freelancer or make_user()
        if with_account is not None:
            with_account(freelancer)
        job = make_job(client_user)
        escrow = fund_job(job, freelancer)
        milestone = escrow.milestones[0]
        milestones_service.submit_milestone(
            db_session, milestone.id, actor=Actor(ActorRole.USER, freelancer.id), submission_ref="done.zip"
        )
        milestones_service.approve_milestone(db_session, milestone.id, actor=Actor(ActorRole.USER, client_user.id))
        return escrow

    return _factory


@pytest.mark.anyio
async def test_happy_path_single_milestone(
    client, db_session, settings, make_user, make_job, fund_job, make_bank_account, headers_for, payout_client, no_sleep
):
    client_user = make_user("CL1")
    freelancer = make_user("FL1")
    make_bank_account(freelancer)
    job = make_job(client_user, reference="JOB1")
    escrow = fund_job(job, freelancer, correlation_id="T1")
    milestone = escrow.milestones[0]

    submitted = await client.post(
        f"/milestones/{milestone.id}/submit", json={"submission_ref": "logo.zip"}, headers=headers_for(freelancer)
    )
    assert submitted.status_code == 200
    approved = await client.post(f"/milestones/{milestone.id}/approve", headers=headers_for(client_user))
    assert approved.status_code == 200

    provider = payout_client(PayoutResult(success=True, provider_ref="PF-777"))
    result = await run_daily_payouts(db_session, settings=settings, client=provider, sleep=no_sleep)

    [item] = _items(db_session, escrow.id)
    assert item.amount == Decimal("900.00")
    assert item.status == PayoutItemStatus.COMPLETED
    assert item.provider_ref == "PF-777"
    assert item.reference == f"TW-JOB1-{item.id}"
    assert item.attempts == 1

    [payload] = provider.payloads
    assert payload["reference"] == f"TW-JOB1-{item.id}"
    assert payload["amount"] == "900.00"
    assert payload["merchant_key"] == settings.PAYFAST_MERCHANT_KEY
    assert verify_signature(payload, payload["signature"], settings.PAYFAST_PASSPHRASE)

    db_session.refresh(escrow)
    assert escrow.status == EscrowStatus.RELEASED
    assert escrow.release_source == ReleaseSource.MILESTONES
    assert milestone.status == MilestoneStatus.PAID

    assert result.status == PayoutBatchStatus.COMPLETED.value
    assert (result.completed, result.failed, result.exit_code) == (1, 0, 0)
    batch = db_session.get(PayoutBatch, result.batch_id)
    assert batch.payout_count == 1
    assert batch.total_amount == Decimal("900.00")
    assert batch.total_fees == Decimal("100.00")

    sent = db_session.scalars(
        select(Notification).where(Notification.user_id == freelancer.id, Notification.kind == "payout_sent")
    ).all()
    assert len(sent) == 1


@pytest.mark.anyio
async def test_missing_bank_account_fails_item(db_session, settings, approved, payout_client, no_sleep):
    escrow = approved()
    provider = payout_client()

    result = await run_daily_payouts(db_session, settings=settings, client=provider, sleep=no_sleep)

    [item] = _items(db_session, escrow.id)
    assert item.status == PayoutItemStatus.FAILED
    assert item.error_message == NO_BANK_ACCOUNT
    assert provider.payloads == []
    assert result.status == PayoutBatchStatus.FAILED.value
    assert result.exit_code == 1
    failed = db_session.scalars(
        select(Notification).where(Notification.user_id == escrow.freelancer_id, Notification.kind == "payout_failed")
    ).all()
    assert len(failed) == 1


@pytest.mark.anyio
async def test_mixed_outcomes_make_a_partial_batch(
    db_session, settings, approved, make_bank_account, payout_client, no_sleep
):
    approved(with_account=make_bank_account)
    approved()

    result = await run_daily_payouts(db_session, settings=settings, client=payout_client(), sleep=no_sleep)

    assert result.status == PayoutBatchStatus.PARTIAL.value
    assert (result.completed, result.failed) == (1, 1)
    assert result.exit_code == 1


@pytest.mark.anyio
async def test_provider_error_is_retried_on_next_run(
    db_session, settings, approved, make_bank_account, payout_client, no_sleep
):
    escrow = approved(with_account=make_bank_account)

    first = await run_daily_payouts(
        db_session,
        settings=settings,
        client=payout_client(PayoutResult(success=False, message="bank unreachable")),
        sleep=no_sleep,
    )
    [failed] = _items(db_session, escrow.id)
    assert failed.status == PayoutItemStatus.FAILED
    assert failed.error_message == "bank unreachable"
    assert first.exit_code == 1
    assert escrow.milestones[0].status == MilestoneStatus.APPROVED

    second = await run_daily_payouts(db_session, settings=settings, client=payout_client(), sleep=no_sleep)

    failed_again, retried = _items(db_session, escrow.id)
    assert failed_again.id == failed.id
    assert retried.milestone_id == failed.milestone_id
    assert retried.status == PayoutItemStatus.COMPLETED
    assert second.batch_id != first.batch_id
    assert second.exit_code == 0
    db_session.refresh(escrow)
    assert escrow.status == EscrowStatus.RELEASED


@pytest.mark.anyio
async def test_transient_errors_back_off_then_succeed(
    db_session, settings, approved, make_bank_account, payout_client, no_sleep
):
    escrow = approved(with_account=make_bank_account)
    tuned = settings.model_copy(update={"PAYOUT_RETRY_BACKOFF_SECONDS": 2.0, "PAYOUT_MAX_ATTEMPTS": 3})
    provider = payout_client(TransientError("timeout"), TransientError("timeout"))

    result = await run_daily_payouts(db_session, settings=tuned, client=provider, sleep=no_sleep)

    assert result.completed == 1
    assert no_sleep.delays == [2.0, 4.0]
    assert len(provider.payloads) == 3
    assert len({p["reference"] for p in provider.payloads}) == 1
    [item] = _items(db_session, escrow.id)
    assert item.attempts == 1


@pytest.mark.anyio
async def test_transient_errors_exhaust_attempts(
    db_session, settings, approved, make_bank_account, payout_client, no_sleep
):
    escrow = approved(with_account=make_bank_account)
    provider = payout_client(*(TransientError("provider down") for _ in range(settings.PAYOUT_MAX_ATTEMPTS)))

    result = await run_daily_payouts(db_session, settings=settings, client=provider, sleep=no_sleep)

    [item] = _items(db_session, escrow.id)
    assert item.status == PayoutItemStatus.FAILED
    assert item.error_message == "provider down"
    assert result.failed == 1


@pytest.mark.anyio
async def test_interrupted_batch_is_resumed_under_same_reference(
    db_session, settings, approved, make_bank_account, payout_client, no_sleep
):
    escrow = approved(with_account=make_bank_account)
    milestone = escrow.milestones[0]
    with ledger.unit_of_work(db_session):
        item_id = ledger.append_payout_item(
            db_session, escrow=escrow, milestone=milestone, amount=milestone.amount, kind=PayoutKind.MILESTONE
        )
        item = db_session.get(PayoutItem, item_id)
        batch_id = ledger.record_payout_batch(db_session, [item], batch_date=utcnow().date())
        ledger.mark_item_processing(db_session, item, reference="TW-CRASHED-1")

    provider = payout_client()
    result = await run_daily_payouts(db_session, settings=settings, client=provider, sleep=no_sleep)

    assert result.batch_id == batch_id
    assert [p["reference"] for p in provider.payloads] == ["TW-CRASHED-1"]
    db_session.refresh(item)
    assert item.status == PayoutItemStatus.COMPLETED
    assert item.attempts == 2
    assert len(_items(db_session, escrow.id)) == 1


@pytest.mark.anyio
async def test_disputed_escrow_is_skipped(
    db_session, settings, approved, make_bank_account, payout_client, no_sleep
):
    escrow = approved(with_account=make_bank_account)
    milestone = escrow.milestones[0]
    with ledger.unit_of_work(db_session):
        ledger.append_payout_item(
            db_session, escrow=escrow, milestone=milestone, amount=milestone.amount, kind=PayoutKind.MILESTONE
        )
        ledger.update_escrow_status(db_session, escrow, EscrowStatus.DISPUTED, actor=Actor.system())

    provider = payout_client()
    result = await run_daily_payouts(db_session, settings=settings, client=provider, sleep=no_sleep)

    assert result.batch_id is None
    assert result.exit_code == 0
    assert provider.payloads == []
    [item] = _items(db_session, escrow.id)
    assert item.status == PayoutItemStatus.PENDING


@pytest.mark.anyio
async def test_items_are_throttled(db_session, settings, approved, make_bank_account, payout_client, no_sleep):
    approved(with_account=make_bank_account)
    approved(with_account=make_bank_account)
    approved(with_account=make_bank_account)
    tuned = settings.model_copy(update={"PAYOUT_THROTTLE_SECONDS": 1.5})

    result = await run_daily_payouts(db_session, settings=tuned, client=payout_client(), sleep=no_sleep)

    assert result.completed == 3
    assert no_sleep.delays == [1.5, 1.5]


@pytest.mark.anyio
async def test_nothing_to_pay_is_idle(db_session, settings, payout_client, no_sleep):
    result = await run_daily_payouts(db_session, settings=settings, client=payout_client(), sleep=no_sleep)

    assert result.batch_id is None
    assert result.status == "idle"
    assert result.exit_code == 0


@pytest.mark.anyio
async def test_operator_run_and_batch_listing(
    client, db_session, approved, make_bank_account, make_user, headers_for
):
    escrow = approved(with_account=make_bank_account)
    operator_headers = headers_for(make_user(is_operator=True))

    forbidden = await client.post("/operator/payouts/run", headers=headers_for(make_user()))
    assert forbidden.status_code == 403

    run = await client.post("/operator/payouts/run", headers=operator_headers)
    assert run.status_code == 200, run.text
    body = run.json()
    assert (body["completed"], body["failed"], body["exit_code"]) == (1, 0, 0)

    batches = await client.get("/operator/payout-batches", params={"status": "completed"}, headers=operator_headers)
    assert body["batch_id"] in [b["id"] for b in batches.json()]

    detail = await client.get(f"/operator/payout-batches/{body['batch_id']}", headers=operator_headers)
    [item] = detail.json()["items"]
    assert item["escrow_id"] == escrow.id
    assert item["provider_ref"].startswith("SB-")

    missing = await client.get("/operator/payout-batches/999999", headers=operator_headers)
    assert missing.status_code == 404


@pytest.mark.anyio
async def test_freelancer_sees_own_payouts(
    client, db_session, settings, approved, make_bank_account, make_user, headers_for, payout_client, no_sleep
):
    freelancer = make_user()
    approved(freelancer=freelancer, with_account=make_bank_account)
    await run_daily_payouts(db_session, settings=settings, client=payout_client(), sleep=no_sleep)

    mine = await client.get("/payments/payouts", headers=headers_for(freelancer))
    assert [p["amount"] for p in mine.json()] == ["900.00"]

    other = await client.get("/payments/payouts", headers=headers_for(make_user()))
    assert other.json() == []


@pytest.mark.anyio
async def test_sandbox_client_simulates_success(settings):
    sandbox = payout_client_for(settings)
    assert isinstance(sandbox, SandboxPayoutClient)

    result = await sandbox.submit({"reference": "TW-JOB1-1"})

    assert result.success is True
    assert result.provider_ref.startswith("SB-")


def _payload(settings, account) -> dict[str, str]:
    return build_payout_payload(
        settings, amount=Decimal("900"), bank_account=account, reference="TW-JOB1-1"
    )


@pytest.mark.anyio
async def test_payfast_client_maps_responses(settings, make_user, make_bank_account):
    account = make_bank_account(make_user())
    payload = _payload(settings, account)
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        reference = dict(httpx.QueryParams(request.content.decode()))["reference"]
        if reference == "ok":
            return httpx.Response(200, json={"status": "success", "transaction_id": "PF123"})
        if reference == "down":
            return httpx.Response(503)
        return httpx.Response(200, json={"status": "error", "message": "bank unreachable"})

    provider = PayFastPayoutClient(settings, transport=httpx.MockTransport(_handler))

    ok = await provider.submit({**payload, "reference": "ok"})
    assert ok == PayoutResult(success=True, provider_ref="PF123")
    assert seen[0].url.path == "/eng/process/payout"
    assert seen[0].url.host == "sandbox.payfast.co.za"

    refused = await provider.submit({**payload, "reference": "nope"})
    assert refused == PayoutResult(success=False, message="bank unreachable")

    with pytest.raises(TransientError):
        await provider.submit({**payload, "reference": "down"})


@pytest.mark.anyio
async def test_payfast_client_transport_error_is_transient(settings, make_user, make_bank_account):
    account = make_bank_account(make_user())

    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = PayFastPayoutClient(settings, transport=httpx.MockTransport(_handler))

    with pytest.raises(TransientError):
        await provider.submit(_payload(settings, account))


def test_payout_payload_is_signed_with_merchant_key(settings, make_user, make_bank_account):
    account = make_bank_account(make_user())

    payload = _payload(settings, account)

    assert payload["amount"] == "900.00"
    assert payload["account_number"] == account.account_number
    assert payload["merchant_id"] == settings.PAYFAST_MERCHANT_ID
    assert verify_signature(payload, payload["signature"], settings.PAYFAST_PASSPHRASE)
    assert not verify_signature({**payload, "merchant_key": "other"}, payload["signature"], settings.PAYFAST_PASSPHRASE)
