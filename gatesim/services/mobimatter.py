"""MobiMatter API client: product catalog feed and eSIM order placement."""
import logging
from typing import Any, Dict, List, Optional

import httpx

from gatesim.core import config
from gatesim.schemas.catalog import CatalogOffer

logger = logging.getLogger(__name__)


class CatalogFeedError(Exception):
    """The provider feed could not be fetched or decoded."""


class ProvisioningError(Exception):
    """The provider refused or failed to issue an eSIM."""


def _json_object(response: httpx.Response, what: str) -> Dict[str, Any]:
    data = response.json()
    if not isinstance(data, dict):
        raise ProvisioningError(f"MobiMatter {what} response is not a JSON object")
    return data


class MobiMatterClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        merchant_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else config.MOBIMATTER_API_KEY
        self.merchant_id = merchant_id if merchant_id is not None else config.MOBIMATTER_MERCHANT_ID
        self.base_url = (base_url or config.MOBIMATTER_API_URL).rstrip("/")
        self.timeout = timeout or config.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.merchant_id)

    def _client(self) -> httpx.Client:
        headers = {
            "api-key": self.api_key,
            "merchantId": self.merchant_id,
            "Accept": "application/json",
        }
        return httpx.Client(base_url=self.base_url, headers=headers, timeout=self.timeout, transport=self._transport)

    def fetch_offers(self) -> List[CatalogOffer]:
        """
        GET /products and map every item to a CatalogOffer.
        Raises CatalogFeedError on missing credentials, transport failures,
        non-2xx responses and undecodable bodies.
        """
        if not self.is_configured:
            raise CatalogFeedError("MobiMatter API credentials missing")

        logger.info("[MobiMatter] Fetching product catalog")
        try:
            with self._client() as client:
                response = client.get("/products")
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise CatalogFeedError(f"Product request failed: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise CatalogFeedError(f"Product request failed: {e}") from e
        except ValueError as e:
            raise CatalogFeedError("Product response is not valid JSON") from e

        items = payload if isinstance(payload, list) else (payload or {}).get("result") or []
        if not isinstance(items, list):
            raise CatalogFeedError("Unexpected product response shape")

        offers = []
        for item in items:
            if not isinstance(item, dict) or not item.get("productId"):
                logger.warning(f"[MobiMatter] Ignoring feed item without productId: {item!r:.120}")
                continue
            try:
                offer = CatalogOffer.from_feed_item(item)
            except Exception as e:
                logger.warning(f"[MobiMatter] Skipping malformed feed item {item.get('productId')}: {e}")
                continue
            offers.append(offer)

        if not offers:
            logger.warning("[MobiMatter] API returned 0 products.")
        else:
            logger.info(f"[MobiMatter] Successfully fetched {len(offers)} products.")
        return offers

    def create_order(self, sku: str) -> Dict[str, Any]:
        """
        Place and complete an eSIM order for `sku`.
        Returns {"provider_order_id", "iccid", "lpa", "qr_data"}.
        """
        if not self.is_configured:
            raise ProvisioningError("MobiMatter API credentials missing. Cannot create order.")

        try:
            with self._client() as client:
                created = client.post("/order", json={"productId": sku, "productCategory": "esim_realtime"})
                created.raise_for_status()
                created_data = _json_object(created, "order")
                result = created_data.get("result") or {}
                if not isinstance(result, dict):
                    raise ProvisioningError("Unexpected MobiMatter order result")
                provider_order_id = result.get("orderId") or created_data.get("orderId")
                if not provider_order_id:
                    raise ProvisioningError("No order id received from MobiMatter")

                completed = client.put("/order/complete", json={
                    "orderId": provider_order_id,
                    "provider": result.get("provider") or created_data.get("provider"),
                })
                completed.raise_for_status()
                completed_result = _json_object(completed, "order completion").get("result") or {}
                if not isinstance(completed_result, dict):
                    raise ProvisioningError("Unexpected MobiMatter order completion result")
        except httpx.HTTPStatusError as e:
            raise ProvisioningError(f"MobiMatter order failed: {e.response.status_code} - {e.response.text}") from e
        except httpx.HTTPError as e:
            raise ProvisioningError(f"MobiMatter order failed: {e}") from e
        except ValueError as e:
            raise ProvisioningError("MobiMatter order response is not valid JSON") from e

        line_item = completed_result.get("orderLineItem")
        details = line_item.get("lineItemDetails") if isinstance(line_item, dict) else None
        if not isinstance(details, list):
            details = []
        values = {d.get("name"): d.get("value") for d in details if isinstance(d, dict)}
        return {
            "provider_order_id": completed_result.get("orderId") or provider_order_id,
            "iccid": values.get("ICCID") or completed_result.get("iccid") or "N/A",
            "lpa": values.get("LOCAL_PROFILE_ASSISTANT") or values.get("LPA") or "N/A",
            "qr_data": values.get("QR_CODE") or "",
        }


mobimatter_client = MobiMatterClient()


def get_mobimatter_client() -> MobiMatterClient:
    return mobimatter_client
