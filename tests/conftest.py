"""Test configuration."""
import os
from collections.abc import AsyncIterator, Callable, Iterator
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

# --- Default env, set before the app reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./trustwork_test.db")
os.environ.setdefault("TW_ENV", "test")
os.environ.setdefault("SERVICE_API_KEY", "test-service-key")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("PAYFAST_MODE", "sandbox")
os.environ.setdefault("PAYFAST_MERCHANT_ID", "10000100")
os.environ.setdefault("PAYFAST_MERCHANT_KEY", "46f0cd694581a")
os.environ.setdefault("PAYFAST_PASSPHRASE", "jt7NOE43FZPn")
os.environ.setdefault("SANDBOX_PAYOUT_DELAY_SECONDS", "0")
os.environ.setdefault("PAYOUT_THROTTLE_SECONDS", "0")
os.environ.setdefault("PAYOUT_RETRY_BACKOFF_SECONDS", "0")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")

from app.main import app  # noqa: E402
from app.config import Settings, get_settings  # noqa: E402
from app.db import get_db  # noqa: E402
from app.models import (  # noqa: E402
    Application,
    Escrow,
    FreelancerBankAccount,
    Job,
    User,
)
from app.services import ledger, webhooks  # noqa: E402
from app.services.api_keys import issue_key  # noqa: E402
from app.services.payfast import PayoutResult  # noqa: E402
from app.services.signature import sign_payload  # noqa: E402
from app.utils.time import utcnow  # noqa: E402

DB_PATH = Path("./trustwork_test.db")


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Fresh DB file for the session
if DB_PATH.exists():
    DB_PATH.unlink()

engine = create_engine(
    os.environ["DATABASE_URL"],
    connect_args={"check_same_thread": False},
)


# pysqlite only honours SAVEPOINT when it stops managing transactions itself.
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(
    autoflush=False,
    expire_on_commit=False,
    join_transaction_mode="create_savepoint",
)

# --- (2) Schema comes from Alembic only
_run_migrations()


@pytest.fixture
def db_session() -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def override_settings(settings: Settings) -> Iterator[Callable[..., Settings]]:
    """Swap the settings seen by request handlers for a modified copy."""

    def _apply(**updates) -> Settings:
        patched = settings.model_copy(update=updates)
        app.dependency_overrides[get_settings] = lambda: patched
        return patched

    yield _apply
    app.dependency_overrides.pop(get_settings, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def service_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {os.environ['SERVICE_API_KEY']}"}


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    def _factory(reference: str | None = None, *, is_operator: bool = False) -> User:
        tag = uuid4().hex[:8]
        user = User(
            reference=reference or f"U-{tag}",
            username=f"user-{tag}",
            email=f"user-{tag}@example.com",
            is_operator=is_operator,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _factory


@pytest.fixture
def headers_for(db_session: Session) -> Callable[[User], dict[str, str]]:
    def _factory(user: User) -> dict[str, str]:
        _, raw = issue_key(db_session, name=f"key-{uuid4().hex[:8]}", user_id=user.id)
        return {"Authorization": f"Bearer {raw}"}

    return _factory


@pytest.fixture
def make_job(db_session: Session) -> Callable[..., Job]:
    def _factory(
        client_user: User,
        *,
        reference: str | None = None,
        plan: list[dict] | None = None,
        title: str = "Logo design",
    ) -> Job:
        job = Job(
            reference=reference or f"JOB-{uuid4().hex[:8]}",
            title=title,
            client_id=client_user.id,
            budget=Decimal("1000.00"),
            milestone_plan=plan,
        )
        db_session.add(job)
        db_session.commit()
        return job

    return _factory


@pytest.fixture
def make_application(db_session: Session) -> Callable[[Job, User], Application]:
    def _factory(job: Job, freelancer: User) -> Application:
        application = Application(job_id=job.id, freelancer_id=freelancer.id)
        db_session.add(application)
        db_session.commit()
        return application

    return _factory


@pytest.fixture
def make_bank_account(db_session: Session) -> Callable[..., FreelancerBankAccount]:
    def _factory(user: User, *, verified: bool = True) -> FreelancerBankAccount:
        account = FreelancerBankAccount(
            user_id=user.id,
            bank_name="FNB",
            account_holder_name="Thandi Nkosi",
            account_number="62845571234",
            branch_code="250655",
            is_primary=True,
            is_verified=verified,
            verified_at=utcnow() if verified else None,
        )
        db_session.add(account)
        db_session.commit()
        return account

    return _factory


@pytest.fixture
def itn_fields(settings: Settings) -> Callable[..., dict[str, str]]:
    """Signed ITN form fields as PayFast would post them."""

    def _factory(
        job: Job,
        freelancer: User,
        *,
        correlation_id: str = "T1",
        amount: str = "1000.00",
        status: str = "COMPLETE",
        application: Application | None = None,
        **extra: str,
    ) -> dict[str, str]:
        fields = {
            "m_payment_id": correlation_id,
            "pf_payment_id": f"PF{correlation_id}",
            "payment_status": status,
            "item_name": job.title,
            "amount_gross": amount,
            "amount_fee": "-23.00",
            "amount_net": str(Decimal(amount) - Decimal("23.00")),
            "name_first": "Lerato",
            "email_address": "lerato@example.com",
            "merchant_id": settings.PAYFAST_MERCHANT_ID,
            "custom_str1": job.reference,
            "custom_str2": freelancer.reference,
            "custom_str3": application.reference if application else "",
            **extra,
        }
        return sign_payload(fields, settings.PAYFAST_PASSPHRASE)

    return _factory


@pytest.fixture
def fund_job(
    db_session: Session, settings: Settings, itn_fields: Callable[..., dict[str, str]]
) -> Callable[..., Escrow]:
    """Run a COMPLETE notification through reconciliation and return the held escrow."""

    def _factory(job: Job, freelancer: User, *, correlation_id: str | None = None, amount: str = "1000.00") -> Escrow:
        correlation_id = correlation_id or f"T-{uuid4().hex[:10]}"
        fields = itn_fields(job, freelancer, correlation_id=correlation_id, amount=amount)
        result = webhooks.handle_delivery(db_session, fields, settings=settings)
        assert result.escrow_id is not None, result.error
        return ledger.get_escrow_by_correlation(db_session, correlation_id)

    return _factory


class FakePayoutClient:
    """Records submitted payloads and replays scripted outcomes (success by default)."""

    def __init__(self, *outcomes: PayoutResult | Exception) -> None:
        self.outcomes = list(outcomes)
        self.payloads: list[dict[str, str]] = []

    async def submit(self, payload: dict[str, str]) -> PayoutResult:
        self.payloads.append(payload)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
        else:
            outcome = PayoutResult(success=True, provider_ref=f"PF-{len(self.payloads)}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def payout_client() -> type[FakePayoutClient]:
    return FakePayoutClient


@pytest.fixture
def no_sleep():
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep

