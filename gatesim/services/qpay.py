"""
QPay payment client
Mongolian QR payment gateway: invoice creation and payment checks.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import httpx

from gatesim.core import config
from gatesim.schemas.payment import Deeplink, Invoice

logger = logging.getLogger(__name__)

TOKEN_EXPIRY_MARGIN_SECONDS = 60


class PaymentGatewayError(Exception):
    """QPay could not be reached or rejected the request."""


class QPayClient:
    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        invoice_code: Optional[str] = None,
        api_url: Optional[str] = None,
        callback_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.username = username if username is not None else config.QPAY_USERNAME
        self.password = password if password is not None else config.QPAY_PASSWORD
        self.invoice_code = invoice_code if invoice_code is not None else config.QPAY_INVOICE_CODE
        self.api_url = (api_url or config.QPAY_API_URL).rstrip("/")
        self.callback_url = callback_url if callback_url is not None else config.QPAY_CALLBACK_URL
        self.timeout = timeout or config.HTTP_TIMEOUT_SECONDS
        self._transport = transport
        self._clock = clock
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.api_url, timeout=self.timeout, transport=self._transport)

    def _authenticate(self) -> str:
        with self._token_lock:
            if self._access_token and self._clock() < self._token_expires_at:
                return self._access_token

            if not self.username or not self.password:
                raise PaymentGatewayError("QPay credentials are not configured")

            try:
                with self._client() as client:
                    response = client.post("/auth/token", auth=(self.username, self.password))
                    response.raise_for_status()
                    data = response.json()
            except httpx.HTTPStatusError as e:
                raise PaymentGatewayError(f"QPay authentication failed: {e.response.status_code}") from e
            except httpx.HTTPError as e:
                raise PaymentGatewayError(f"QPay authentication failed: {e}") from e
            except ValueError as e:
                raise PaymentGatewayError("QPay authentication returned invalid JSON") from e

            token = data.get("access_token")
            if not token:
                raise PaymentGatewayError("QPay authentication returned no access token")
            expires_in = float(data.get("expires_in") or 0)
            self._access_token = token
            self._token_expires_at = self._clock() + max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0)
            return token

    def _request(self, method: str, endpoint: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        token = self._authenticate()
        try:
            with self._client() as client:
                response = client.request(method, endpoint, json=json, headers={"Authorization": f"Bearer {token}"})
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            raise PaymentGatewayError(f"QPay API error: {e.response.text or e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"QPay API error: {e}") from e
        except ValueError as e:
            raise PaymentGatewayError("QPay API returned invalid JSON") from e

    def create_invoice(self, *, order_id: str, amount: int, description: str) -> Invoice:
        payload = {
            "invoice_code": self.invoice_code,
            "sender_invoice_no": order_id,
            "invoice_receiver_code": "terminal",
            "invoice_description": description,
            "amount": amount,
            "callback_url": f"{self.callback_url}?order_id={order_id}",
        }
        data = self._request("POST", "/invoice", json=payload)
        if not data.get("invoice_id"):
            raise PaymentGatewayError("QPay returned no invoice id")

        logger.info(f"[QPay] Invoice {data['invoice_id']} created for order {order_id} ({amount} MNT)")
        return Invoice(
            invoice_id=data["invoice_id"],
            order_id=order_id,
            qr_image=data.get("qr_image"),
            qr_text=data.get("qr_text"),
            short_url=data.get("qPay_shortUrl"),
            deeplinks=[
                Deeplink(
                    name=link.get("name") or "",
                    description=link.get("description") or "",
                    link=link.get("link") or "",
                    logo=link.get("logo") or "",
                )
                for link in data.get("urls") or []
            ],
            amount_mnt=amount,
        )

    def check_payment(self, invoice_id: str) -> Dict[str, Any]:
        """
        Returns {"is_paid", "paid_amount", "rows"}. Paid means at least one
        payment row with status PAID.
        """
        data = self._request("POST", "/payment/check", json={"object_type": "INVOICE", "object_id": invoice_id})
        rows = data.get("rows") or []
        is_paid = (data.get("count") or 0) > 0 and any(row.get("payment_status") == "PAID" for row in rows)
        return {"is_paid": is_paid, "paid_amount": data.get("paid_amount") or 0, "rows": rows}

    def get_invoice(self, invoice_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/invoice/{invoice_id}")

    def cancel_invoice(self, invoice_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/invoice/{invoice_id}")


qpay_client = QPayClient()


def get_qpay_client() -> QPayClient:
    return qpay_client
