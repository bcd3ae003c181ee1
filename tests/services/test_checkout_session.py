import asyncio
from datetime import datetime

import httpx
import pytest

from gatesim.core.checkout import CheckoutState, CheckoutValidationError
from gatesim.core.security import create_access_token
from gatesim.crud import crud_order, crud_user
from gatesim.main import app
from gatesim.schemas.catalog import CanonicalPackage
from gatesim.schemas.order import Order, OrderStatus
from gatesim.schemas.payment import Invoice
from gatesim.schemas.user import UserCreate
from gatesim.services.checkout_session import (
    INVOICE_ERROR_MESSAGE,
    CheckoutBackendError,
    CheckoutSession,
    HTTPCheckoutBackend,
    PollResult,
)
from tests.conftest import DEFAULT_PRICING

pytestmark = pytest.mark.services

PACKAGE = CanonicalPackage(
    sku="jp-5gb-7d-b", title="Japan 5GB 7 Days", provider="RedteaGO",
    data_amount_mb=5120, duration_days=7, countries=["JP"], sell_price_mnt=47500,
)
TOP_UP = PACKAGE.model_copy(update={"sku": "jp-topup-1gb", "is_top_up": True, "provider": "eSIMGo"})


class FakeBackend:
    """
    Status checks are numbered from 1. Checks numbered `paid_from` and later
    answer paid; checks listed in `failing` raise.
    """

    def __init__(self, paid_from=None, check_delay=0.0, failing=()):
        self.paid_from = paid_from
        self.check_delay = check_delay
        self.failing = set(failing)
        self.fail_invoice = False
        self.gate = None
        self.checks = 0
        self.created_orders = []

    async def create_order(self, contact_email, items):
        now = datetime.now()
        order = Order(
            id=f"GS{len(self.created_orders) + 1}", contact_email=contact_email, items=items,
            total_amount=sum(i.price * i.quantity for i in items), currency="MNT",
            status=OrderStatus.PENDING, payment_method="qpay", created_at=now, updated_at=now,
        )
        self.created_orders.append(order)
        return order

    async def create_invoice(self, order):
        if self.fail_invoice:
            raise CheckoutBackendError("POST /api/v1/checkout/qpay failed: 502")
        return Invoice(invoice_id=f"INV-{order.id}", order_id=order.id, amount_mnt=order.total_amount)

    async def check_payment(self, invoice_id, order_id):
        self.checks += 1
        number = self.checks
        if self.gate is not None:
            await self.gate.wait()
        if self.check_delay:
            await asyncio.sleep(self.check_delay)
        if number in self.failing:
            raise CheckoutBackendError("GET /api/v1/checkout/qpay/status failed: timeout")
        return self.paid_from is not None and number >= self.paid_from


def _session(backend, confirmations=None, **kwargs):
    options = {"poll_interval": 0.01, "timeout": 5, "success_delay": 0}
    options.update(kwargs)

    def record(session):
        if confirmations is not None:
            confirmations.append(session.order.id)

    return CheckoutSession(backend, on_confirmed=record, **options)


@pytest.mark.asyncio
async def test_start_creates_order_and_invoice():
    backend = FakeBackend()
    session = _session(backend)

    state = await session.start(" bat@example.mn ", PACKAGE)

    assert state == CheckoutState.QR
    assert session.order.contact_email == "bat@example.mn"
    assert session.order.items[0].metadata["operator"] == "RedteaGO"
    assert session.invoice.invoice_id == "INV-GS1"

@pytest.mark.asyncio
async def test_invalid_email_keeps_details_state():
    backend = FakeBackend()
    session = _session(backend)

    with pytest.raises(CheckoutValidationError) as exc_info:
        await session.start("bat@", PACKAGE)

    assert exc_info.value.reason == "INVALID_EMAIL"
    assert session.state == CheckoutState.DETAILS
    assert backend.created_orders == []

@pytest.mark.asyncio
async def test_guest_top_up_is_refused_before_order():
    backend = FakeBackend()
    session = _session(backend)

    with pytest.raises(CheckoutValidationError) as exc_info:
        await session.start("bat@example.mn", TOP_UP, prior_orders=None)

    assert exc_info.value.reason == "LOGIN_REQUIRED"
    assert backend.created_orders == []

@pytest.mark.asyncio
async def test_top_up_allowed_with_matching_esim():
    held = [{"status": "completed", "items": [{"sku": "old", "metadata": {"operator": "eSIMGo"}}]}]
    session = _session(FakeBackend())
    assert await session.start("bat@example.mn", TOP_UP, prior_orders=held) == CheckoutState.QR

@pytest.mark.asyncio
async def test_invoice_failure_moves_to_error():
    backend = FakeBackend()
    backend.fail_invoice = True
    session = _session(backend)

    assert await session.start("bat@example.mn", PACKAGE) == CheckoutState.ERROR
    assert session.error_message == INVOICE_ERROR_MESSAGE
    assert session.is_finished
    assert await session.run() == CheckoutState.ERROR

@pytest.mark.asyncio
async def test_overlapping_paid_answers_confirm_once():
    # Paid from the third check; the fourth and later overlap with it
    confirmations = []
    backend = FakeBackend(paid_from=3, check_delay=0.05)
    session = _session(backend, confirmations)
    await session.start("bat@example.mn", PACKAGE)

    assert await session.run() == CheckoutState.SUCCESS
    assert confirmations == ["GS1"]
    assert backend.checks >= 3

@pytest.mark.asyncio
async def test_concurrent_paid_observations_fire_side_effect_once():
    confirmations = []
    backend = FakeBackend(paid_from=1)
    backend.gate = asyncio.Event()
    session = _session(backend, confirmations)
    await session.start("bat@example.mn", PACKAGE)

    polls = [asyncio.ensure_future(session.poll_once()) for _ in range(5)]
    await asyncio.sleep(0)
    backend.gate.set()
    results = await asyncio.gather(*polls)

    assert results.count(PollResult.CONFIRMED) == 1
    assert results.count(PollResult.ALREADY_CONFIRMED) == 4
    assert confirmations == ["GS1"]
    assert session.state == CheckoutState.SUCCESS

@pytest.mark.asyncio
async def test_failed_checks_count_as_not_paid():
    confirmations = []
    backend = FakeBackend(paid_from=3, failing={1, 2})
    session = _session(backend, confirmations)
    await session.start("bat@example.mn", PACKAGE)

    assert await session.poll_once() == PollResult.PENDING
    assert await session.poll_once() == PollResult.PENDING
    assert session.state == CheckoutState.QR
    assert await session.poll_once() == PollResult.CONFIRMED
    assert confirmations == ["GS1"]

@pytest.mark.asyncio
async def test_manual_check_shares_latch_with_timer():
    confirmations = []
    backend = FakeBackend(paid_from=1)
    session = _session(backend, confirmations)
    await session.start("bat@example.mn", PACKAGE)

    assert await session.check_now() == PollResult.CONFIRMED
    assert await session.check_now() == PollResult.ALREADY_CONFIRMED
    assert await session.run() == CheckoutState.SUCCESS
    assert confirmations == ["GS1"]
    assert backend.checks == 1

@pytest.mark.asyncio
async def test_unpaid_manual_check_stays_on_qr():
    session = _session(FakeBackend())
    await session.start("bat@example.mn", PACKAGE)
    assert await session.check_now() == PollResult.PENDING
    assert session.state == CheckoutState.QR

@pytest.mark.asyncio
async def test_unexpected_check_errors_count_as_not_paid():
    class BrokenBackend(FakeBackend):
        async def check_payment(self, invoice_id, order_id):
            self.checks += 1
            if self.checks == 1:
                raise AttributeError("'list' object has no attribute 'get'")
            return True

    confirmations = []
    session = _session(BrokenBackend(), confirmations)
    await session.start("bat@example.mn", PACKAGE)

    assert await session.check_now() == PollResult.PENDING
    assert session.state == CheckoutState.QR
    assert await session.run() == CheckoutState.SUCCESS
    assert confirmations == ["GS1"]

@pytest.mark.asyncio
async def test_success_passes_through_processing():
    states = []
    backend = FakeBackend(paid_from=1)

    def record(session):
        states.append(session.state)

    session = CheckoutSession(backend, poll_interval=0.01, timeout=5, success_delay=0.01, on_confirmed=record)
    await session.start("bat@example.mn", PACKAGE)
    await session.check_now()

    assert states == [CheckoutState.PROCESSING]
    assert session.state == CheckoutState.SUCCESS
    assert session.locked

@pytest.mark.asyncio
async def test_failing_hook_still_reaches_success(caplog):
    def explode(session):
        raise RuntimeError("analytics down")

    session = CheckoutSession(FakeBackend(paid_from=1), success_delay=0, on_confirmed=explode)
    await session.start("bat@example.mn", PACKAGE)
    with caplog.at_level("ERROR"):
        assert await session.check_now() == PollResult.CONFIRMED
    assert session.state == CheckoutState.SUCCESS
    assert "Post-payment hook failed" in caplog.text

@pytest.mark.asyncio
async def test_async_hook_is_awaited():
    calls = []

    async def hook(session):
        await asyncio.sleep(0)
        calls.append(session.order.id)

    session = CheckoutSession(FakeBackend(paid_from=1), success_delay=0, on_confirmed=hook)
    await session.start("bat@example.mn", PACKAGE)
    await session.check_now()
    assert calls == ["GS1"]

@pytest.mark.asyncio
async def test_polling_stops_at_timeout():
    backend = FakeBackend()
    session = _session(backend, timeout=0.05)
    await session.start("bat@example.mn", PACKAGE)

    assert await session.run() == CheckoutState.QR
    assert session.timed_out
    checks = backend.checks
    assert checks >= 1

    await asyncio.sleep(0.05)
    assert backend.checks == checks

@pytest.mark.asyncio
async def test_polling_stops_after_success():
    backend = FakeBackend(paid_from=2)
    session = _session(backend)
    await session.start("bat@example.mn", PACKAGE)

    assert await session.run() == CheckoutState.SUCCESS
    checks = backend.checks
    await asyncio.sleep(0.05)
    assert backend.checks == checks

@pytest.mark.asyncio
async def test_cancel_stops_polling_and_ignores_late_answers():
    confirmations = []
    backend = FakeBackend(check_delay=0.02)
    session = _session(backend, confirmations)
    await session.start("bat@example.mn", PACKAGE)

    runner = asyncio.ensure_future(session.run())
    await asyncio.sleep(0.03)
    backend.paid_from = 1
    session.cancel()

    assert await runner == CheckoutState.QR
    assert confirmations == []
    assert await session.check_now() == PollResult.INACTIVE

@pytest.mark.asyncio
async def test_start_twice_is_rejected():
    session = _session(FakeBackend())
    await session.start("bat@example.mn", PACKAGE)
    with pytest.raises(RuntimeError):
        await session.start("bat@example.mn", PACKAGE)


# --- Against the HTTP API ---

@pytest.mark.asyncio
async def test_guest_checkout_end_to_end(db_session, catalog_service, fake_qpay, fake_mobimatter):
    backend = HTTPCheckoutBackend("http://testserver", transport=httpx.ASGITransport(app=app))
    confirmations = []
    session = _session(backend, confirmations, timeout=10, poll_interval=0.05)
    try:
        assert await backend.list_my_orders() is None

        package = catalog_service.get_package("jp-5gb-7d-b", DEFAULT_PRICING)
        assert await session.start("bat@example.mn", package) == CheckoutState.QR
        assert session.order.total_amount == 47500
        assert session.order.user_id is None

        assert await session.check_now() == PollResult.PENDING

        fake_qpay.paid.add(session.invoice.invoice_id)
        assert await session.run() == CheckoutState.SUCCESS
    finally:
        await backend.aclose()

    assert len(confirmations) == 1
    order = crud_order.get_order(db_session, order_id=session.order.id)
    assert order.status == OrderStatus.COMPLETED.value
    assert order.payment_id == session.invoice.invoice_id
    assert fake_mobimatter.orders == ["jp-5gb-7d-b"]

@pytest.mark.asyncio
async def test_signed_in_top_up_uses_order_history(db_session, catalog_service, fake_qpay, fake_mobimatter):
    user = crud_user.create_user(db_session, obj_in=UserCreate(email="dorj@example.mn", password="password123"))
    token = create_access_token(data={"sub": user.email})
    backend = HTTPCheckoutBackend("http://testserver", token=token, transport=httpx.ASGITransport(app=app))
    top_up = catalog_service.get_package("jp-topup-1gb", DEFAULT_PRICING)
    try:
        # No eSIM yet
        session = _session(backend)
        with pytest.raises(CheckoutValidationError) as exc_info:
            await session.start("dorj@example.mn", top_up, prior_orders=await backend.list_my_orders())
        assert exc_info.value.reason == "NO_ESIM"

        # Buy the base eSIM from the same provider, then the top-up is allowed
        base = catalog_service.get_package("jp-5gb-7d-a", DEFAULT_PRICING)
        first = _session(backend)
        await first.start("dorj@example.mn", base, prior_orders=await backend.list_my_orders())
        fake_qpay.paid.add(first.invoice.invoice_id)
        assert await first.check_now() == PollResult.CONFIRMED

        second = _session(backend)
        history = await backend.list_my_orders()
        assert await second.start("dorj@example.mn", top_up, prior_orders=history) == CheckoutState.QR
        assert second.order.user_id == user.id
    finally:
        await backend.aclose()

@pytest.mark.asyncio
async def test_backend_maps_http_errors(db_session, catalog_service, fake_qpay, fake_mobimatter):
    backend = HTTPCheckoutBackend("http://testserver", transport=httpx.ASGITransport(app=app))
    try:
        with pytest.raises(CheckoutBackendError):
            await backend.check_payment("INV-unknown", "GS-unknown")
    finally:
        await backend.aclose()

@pytest.mark.asyncio
async def test_server_top_up_refusal_is_a_typed_reason(db_session, catalog_service, fake_qpay, fake_mobimatter):
    user = crud_user.create_user(db_session, obj_in=UserCreate(email="dorj@example.mn", password="password123"))
    token = create_access_token(data={"sub": user.email})
    backend = HTTPCheckoutBackend("http://testserver", token=token, transport=httpx.ASGITransport(app=app))
    top_up = catalog_service.get_package("jp-topup-1gb", DEFAULT_PRICING)
    # A stale history that passes locally; the server holds no eSIM for this user
    stale_history = [{"status": "completed", "items": [{"metadata": {"operator": "eSIMGo"}}]}]
    session = _session(backend)
    try:
        with pytest.raises(CheckoutValidationError) as exc_info:
            await session.start("dorj@example.mn", top_up, prior_orders=stale_history)
    finally:
        await backend.aclose()

    assert exc_info.value.reason == "NO_ESIM"
    assert session.state == CheckoutState.DETAILS
    assert session.order is None
    assert crud_order.get_orders_by_user(db_session, user_id=user.id) == []

@pytest.mark.asyncio
async def test_non_object_status_body_is_backend_error():
    backend = HTTPCheckoutBackend(
        "http://testserver",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=["unexpected"])),
    )
    try:
        with pytest.raises(CheckoutBackendError):
            await backend.check_payment("INV-GS1", "GS1")
    finally:
        await backend.aclose()
