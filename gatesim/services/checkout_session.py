"""
Checkout session: details -> qr -> processing -> success, or error.

The session runs on the caller's event loop. Status checks fire on a fixed
interval without waiting for the previous one to return, so several checks
can be in flight at once. A one-shot latch turns the first "paid" answer
into the only confirmation; every later answer is a no-op.
"""
import asyncio
import inspect
import logging
import time
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Set

import httpx

from gatesim.core import config
from gatesim.core.checkout import CheckoutState, CheckoutValidationError, TERMINAL_STATES, validate_checkout
from gatesim.schemas.catalog import CanonicalPackage
from gatesim.schemas.order import Order, OrderItem
from gatesim.schemas.payment import Invoice

logger = logging.getLogger(__name__)

INVOICE_ERROR_MESSAGE = "Could not create the QPay invoice. Please try again."


class CheckoutBackendError(Exception):
    """The storefront API could not be reached or rejected the request."""


class PollResult(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    INACTIVE = "inactive"


def _raise_refusal(response: httpx.Response) -> None:
    """A 400 carrying {"detail": {"reason", "message"}} is a checkout refusal."""
    if response.status_code != 400:
        return
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        return
    if isinstance(detail, dict) and detail.get("reason"):
        raise CheckoutValidationError(str(detail["reason"]), detail.get("message"))


class HTTPCheckoutBackend:
    """Talks to this service's REST API the way the storefront page does."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            transport=transport,
            timeout=timeout or config.HTTP_TIMEOUT_SECONDS,
        )
        self.authenticated = bool(token)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            _raise_refusal(e.response)
            raise CheckoutBackendError(f"{method} {url} failed: {e.response.status_code} {e.response.text}") from e
        except httpx.HTTPError as e:
            raise CheckoutBackendError(f"{method} {url} failed: {e}") from e
        except ValueError as e:
            raise CheckoutBackendError(f"{method} {url} returned invalid JSON") from e

    async def list_my_orders(self) -> Optional[List[Order]]:
        """None for a guest, otherwise the signed-in customer's orders."""
        if not self.authenticated:
            return None
        data = await self._call("GET", "/api/v1/users/me/orders")
        return [Order.model_validate(o) for o in data]

    async def create_order(self, contact_email: str, items: List[OrderItem]) -> Order:
        payload = {"contact_email": contact_email, "items": [item.model_dump() for item in items]}
        return Order.model_validate(await self._call("POST", "/api/v1/orders/", json=payload))

    async def create_invoice(self, order: Order) -> Invoice:
        return Invoice.model_validate(await self._call("POST", "/api/v1/checkout/qpay", json={"order_id": order.id}))

    async def check_payment(self, invoice_id: str, order_id: str) -> bool:
        data = await self._call("GET", "/api/v1/checkout/qpay/status", params={"invoice_id": invoice_id, "order_id": order_id})
        if not isinstance(data, dict):
            raise CheckoutBackendError("Payment status response is not a JSON object")
        return bool(data.get("is_paid"))


class CheckoutSession:
    def __init__(
        self,
        backend,
        *,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        success_delay: Optional[float] = None,
        on_confirmed: Optional[Callable[["CheckoutSession"], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.poll_interval = config.PAYMENT_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.timeout = config.PAYMENT_POLL_TIMEOUT_SECONDS if timeout is None else timeout
        self.success_delay = config.PAYMENT_SUCCESS_DELAY_SECONDS if success_delay is None else success_delay
        self.on_confirmed = on_confirmed
        self._clock = clock

        self.state = CheckoutState.DETAILS
        self.order: Optional[Order] = None
        self.invoice: Optional[Invoice] = None
        self.error_message: Optional[str] = None
        self.locked = False
        self.timed_out = False
        self._cancelled = False
        self._qr_since = 0.0
        self._inflight: Set[asyncio.Future] = set()

    async def start(
        self,
        contact_email: str,
        package: CanonicalPackage,
        prior_orders: Optional[Iterable[Any]] = None,
        quantity: int = 1,
    ) -> CheckoutState:
        """
        details -> qr. Raises CheckoutValidationError (state unchanged, no
        order created) when the email or top-up eligibility check fails,
        here or on the server.
        prior_orders is None for a guest.
        """
        if self.state != CheckoutState.DETAILS:
            raise RuntimeError(f"Checkout already started (state: {self.state.value})")

        validate_checkout(contact_email, is_top_up=package.is_top_up, provider=package.provider, orders=prior_orders)

        item = OrderItem(
            sku=package.sku,
            name=package.title,
            price=package.sell_price_mnt,
            quantity=quantity,
            metadata={
                "operator": package.provider,
                "is_top_up": package.is_top_up,
                "data_amount_mb": package.data_amount_mb,
                "duration_days": package.duration_days,
                "countries": list(package.countries),
            },
        )
        try:
            self.order = await self.backend.create_order(contact_email.strip(), [item])
            self.invoice = await self.backend.create_invoice(self.order)
        except CheckoutBackendError as e:
            logger.error(f"Checkout failed before payment: {e}")
            self.state = CheckoutState.ERROR
            self.error_message = INVOICE_ERROR_MESSAGE
            return self.state

        self.state = CheckoutState.QR
        self._qr_since = self._clock()
        logger.info(f"Order {self.order.id} awaiting payment on invoice {self.invoice.invoice_id}")
        return self.state

    async def poll_once(self) -> PollResult:
        """
        One payment status check. Failures count as "not paid yet".
        The latch is read before the request and again after it, and it is
        set before the first await of the confirmation, so overlapping
        checks confirm at most once.
        """
        if self.locked:
            return PollResult.ALREADY_CONFIRMED
        if self.state != CheckoutState.QR or self._cancelled:
            return PollResult.INACTIVE

        try:
            is_paid = await self.backend.check_payment(self.invoice.invoice_id, self.order.id)
        except CheckoutBackendError as e:
            logger.info(f"Payment check for order {self.order.id} failed, will retry: {e}")
            return PollResult.PENDING
        except Exception:
            logger.warning(f"Unexpected error checking payment for order {self.order.id}, will retry", exc_info=True)
            return PollResult.PENDING

        if self.locked:
            return PollResult.ALREADY_CONFIRMED
        if self._cancelled:
            return PollResult.INACTIVE
        if not is_paid:
            return PollResult.PENDING

        self.locked = True
        self.state = CheckoutState.PROCESSING
        await self._confirm()
        return PollResult.CONFIRMED

    async def check_now(self) -> PollResult:
        """Manual "check payment" button. Shares the latch with the timer."""
        return await self.poll_once()

    async def _confirm(self) -> None:
        logger.info(f"Payment confirmed for order {self.order.id}")
        if self.on_confirmed is not None:
            try:
                result = self.on_confirmed(self)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.error(f"Post-payment hook failed for order {self.order.id}", exc_info=True)
        await asyncio.sleep(self.success_delay)
        if self.state == CheckoutState.PROCESSING:
            self.state = CheckoutState.SUCCESS

    async def run(self) -> CheckoutState:
        """
        Fire a status check every poll_interval while the invoice is open.
        Stops on payment, on the timeout ceiling (state stays qr), on
        cancel() or on a terminal state.
        """
        if self.state != CheckoutState.QR:
            return self.state

        deadline = self._qr_since + self.timeout
        while self.state == CheckoutState.QR and not self._cancelled:
            if self._clock() >= deadline:
                self.timed_out = True
                logger.info(f"Stopped polling order {self.order.id} after {self.timeout:.0f}s without payment")
                break
            tick = asyncio.ensure_future(self.poll_once())
            self._inflight.add(tick)
            tick.add_done_callback(self._inflight.discard)
            await asyncio.sleep(self.poll_interval)

        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        return self.state

    def cancel(self) -> None:
        """Stop polling; answers still in flight are ignored."""
        self._cancelled = True

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES
