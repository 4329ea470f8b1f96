"""Test configuration."""
import asyncio
import itertools
import json
import os
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path
from typing import Any
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

# --- Default environment, set before the application is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./tradiepay_test.db")
os.environ.setdefault("TRADIE_ENV", "test")
os.environ.setdefault("DEV_API_KEY", "test-legacy-key")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("LOG_LEVEL", "INFO")

from tradiepay.main import app  # noqa: E402
from tradiepay.db import get_db  # noqa: E402
from tradiepay.models import (  # noqa: E402
    ApiKey,
    ApiScope,
    ConnectAccount,
    EscrowPayment,
    Job,
    JobStatus,
    PaymentStatus,
    User,
    UserRole,
)
from tradiepay.services.processor import (  # noqa: E402
    HeldPayment,
    InvalidSignatureError,
    OnboardingLink,
    PayoutAccount,
    RefundResult,
)
from tradiepay.services.psp_stripe import get_payment_processor  # noqa: E402
from tradiepay.utils.apikey import hash_key  # noqa: E402

DB_PATH = Path("./tradiepay_test.db")
VALID_SIGNATURE = "t=1,v1=valid"


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Fresh database file per session
if DB_PATH.exists():
    DB_PATH.unlink()

engine = create_engine(
    os.environ["DATABASE_URL"],
    connect_args={"check_same_thread": False},
    future=True,
)


# pysqlite only handles SAVEPOINT correctly when SQLAlchemy emits BEGIN itself.
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record) -> None:
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False,
    join_transaction_mode="create_savepoint",
)

# --- (2) Schema comes from Alembic only
_run_migrations()


@pytest.fixture(scope="session", autouse=True)
def startup_app() -> Iterator[None]:
    with asyncio.Runner() as runner:
        lifespan = app.router.lifespan_context(app)
        runner.run(lifespan.__aenter__())
        yield
        runner.run(lifespan.__aexit__(None, None, None))


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


class FakeProcessor:
    """In-memory ``PaymentProcessor`` recording every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_with: dict[str, Exception] = {}
        self.intent_status: dict[str, str] = {}
        self.accounts: dict[str, PayoutAccount] = {}
        self.on_create_held_payment: Callable[[str], None] | None = None
        self._ids = itertools.count(1)

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def _record(self, operation: str, **kwargs: Any) -> None:
        self.calls.append((operation, kwargs))
        exc = self.fail_with.get(operation)
        if exc is not None:
            raise exc

    def create_held_payment(self, *, amount, fee_amount, destination_account_id, currency, metadata):
        self._record(
            "create_held_payment",
            amount=amount,
            fee_amount=fee_amount,
            destination_account_id=destination_account_id,
            currency=currency,
            metadata=dict(metadata),
        )
        ref = f"pi_test_{next(self._ids)}"
        self.intent_status[ref] = "requires_payment_method"
        if self.on_create_held_payment is not None:
            self.on_create_held_payment(ref)
        return HeldPayment(ref=ref, client_secret=f"{ref}_secret_abc")

    def capture_held_payment(self, ref):
        self._record("capture_held_payment", ref=ref)
        self.intent_status[ref] = "succeeded"

    def cancel_held_payment(self, ref):
        self._record("cancel_held_payment", ref=ref)
        self.intent_status[ref] = "canceled"

    def refund_payment(self, ref, reason):
        self._record("refund_payment", ref=ref, reason=reason)
        if self.intent_status.get(ref) == "succeeded":
            return RefundResult(refund_id=f"re_test_{next(self._ids)}", method="refund")
        self.intent_status[ref] = "canceled"
        return RefundResult(refund_id=ref, method="cancel")

    def create_payout_account(self, *, country, capabilities, metadata, email=None):
        self._record(
            "create_payout_account",
            country=country,
            capabilities=list(capabilities),
            metadata=dict(metadata),
            email=email,
        )
        account = PayoutAccount(account_id=f"acct_test_{next(self._ids)}", metadata=dict(metadata))
        self.accounts[account.account_id] = account
        return account

    def retrieve_payout_account(self, account_id):
        self._record("retrieve_payout_account", account_id=account_id)
        return self.accounts[account_id]

    def create_onboarding_link(self, account_id, *, return_url, refresh_url):
        self._record("create_onboarding_link", account_id=account_id, return_url=return_url, refresh_url=refresh_url)
        return OnboardingLink(url=f"https://connect.stripe.test/setup/{account_id}")

    def verify_webhook_signature(self, raw_body, signature_header):
        self._record("verify_webhook_signature", signature_header=signature_header)
        if signature_header != VALID_SIGNATURE:
            raise InvalidSignatureError("No signatures found matching the expected signature for payload")
        return json.loads(raw_body)


@pytest.fixture
def processor() -> Iterator[FakeProcessor]:
    fake = FakeProcessor()
    app.dependency_overrides[get_payment_processor] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_payment_processor, None)


@pytest.fixture
async def client(processor: FakeProcessor) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    def _factory(role: UserRole = UserRole.TRADIE, name: str | None = None) -> User:
        handle = name or f"{role.value}-{uuid4().hex[:8]}"
        user = User(username=handle, email=f"{handle}@example.com", role=role)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _factory


@pytest.fixture
def make_connect_account(db_session: Session) -> Callable[..., ConnectAccount]:
    def _factory(user: User, *, payouts_enabled: bool = True) -> ConnectAccount:
        account = ConnectAccount(
            user_id=user.id,
            external_account_id=f"acct_{uuid4().hex[:12]}",
            charges_enabled=payouts_enabled,
            payouts_enabled=payouts_enabled,
            details_submitted=payouts_enabled,
        )
        db_session.add(account)
        db_session.commit()
        db_session.refresh(account)
        return account

    return _factory


@pytest.fixture
def make_job(db_session: Session) -> Callable[..., Job]:
    def _factory(tradie: User, helper: User | None = None, status: JobStatus | None = None) -> Job:
        job = Job(
            title=f"Job {uuid4().hex[:6]}",
            tradie_id=tradie.id,
            assigned_helper_id=helper.id if helper else None,
            status=status or (JobStatus.ASSIGNED if helper else JobStatus.OPEN),
        )
        db_session.add(job)
        db_session.commit()
        db_session.refresh(job)
        return job

    return _factory


@pytest.fixture
def make_payment(db_session: Session) -> Callable[..., EscrowPayment]:
    def _factory(job: Job, *, status: PaymentStatus = PaymentStatus.PENDING, amount: int = 20000) -> EscrowPayment:
        payment = EscrowPayment(
            job_id=job.id,
            tradie_id=job.tradie_id,
            helper_id=job.assigned_helper_id,
            amount=amount,
            platform_fee_amount=amount // 20,
            currency="AUD",
            external_payment_ref=f"pi_{uuid4().hex[:16]}",
            destination_account_id="acct_destination",
            status=status,
        )
        db_session.add(payment)
        db_session.commit()
        db_session.refresh(payment)
        return payment

    return _factory


@pytest.fixture
def funded_setup(make_user, make_connect_account, make_job) -> Callable[..., tuple[User, User, Job]]:
    """Tradie, helper with payouts enabled, and a job assigned to the helper."""

    def _factory() -> tuple[User, User, Job]:
        tradie = make_user(UserRole.TRADIE)
        helper = make_user(UserRole.HELPER)
        make_connect_account(helper)
        job = make_job(tradie, helper)
        return tradie, helper, job

    return _factory


@pytest.fixture
def make_api_key(db_session: Session) -> Callable[..., dict[str, str]]:
    """Create a key and return the auth headers for it."""

    def _factory(scope: ApiScope = ApiScope.user, user: User | None = None, is_active: bool = True) -> dict[str, str]:
        token = f"{scope.value}-{uuid4().hex}"
        api_key = ApiKey(
            name=f"{scope.value}-{uuid4().hex}",
            prefix="test_" + scope.value,
            key_hash=hash_key(token),
            scope=scope,
            user_id=user.id if user else None,
            is_active=is_active,
        )
        db_session.add(api_key)
        db_session.commit()
        return {"Authorization": f"Bearer {token}"}

    return _factory


@pytest.fixture
def admin_headers(make_api_key) -> dict[str, str]:
    return make_api_key(ApiScope.admin)


@pytest.fixture
def support_headers(make_api_key) -> dict[str, str]:
    return make_api_key(ApiScope.support)


@pytest.fixture
def legacy_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {os.environ['DEV_API_KEY']}"}


@pytest.fixture
def deliver_event(client: AsyncClient) -> Callable[..., Any]:
    """Post a signed Stripe event envelope to the webhook endpoint."""

    async def _deliver(
        event_type: str,
        obj: dict[str, Any],
        *,
        event_id: str | None = None,
        signature: str | None = VALID_SIGNATURE,
    ):
        payload = {
            "id": event_id or f"evt_{uuid4().hex}",
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        }
        headers = {"Content-Type": "application/json"}
        if signature is not None:
            headers["Stripe-Signature"] = signature
        return await client.post("/webhooks/payment-events", content=json.dumps(payload), headers=headers)

    return _deliver
