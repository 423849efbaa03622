import logging
import time
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import requests

from orders_service.utils.money import to_money

logger = logging.getLogger(__name__)

FREE_SHIPPING_THRESHOLD = Decimal("50")
BASE_SHIPPING = Decimal("8")
EXTRA_ITEM_SHIPPING = Decimal("3")
MAX_SHIPPING = Decimal("15")

DEFAULT_CARRIER = "Poste Italiane"


def shipping_cost(subtotal, item_count: int) -> Decimal:
    """Shipping fee for a single seller's cart. Never computed over a multi-seller basket."""
    if to_money(subtotal) >= FREE_SHIPPING_THRESHOLD:
        return to_money(0)
    if item_count <= 1:
        return to_money(BASE_SHIPPING)
    return to_money(min(BASE_SHIPPING + EXTRA_ITEM_SHIPPING * (item_count - 1), MAX_SHIPPING))


class ShippingLabelClient:
    """Shipping label provider. Failures are reported in the result, never raised."""

    def __init__(self, base_url: str | None = None, timeout: float = 6):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout

    def generate(self, order) -> dict:
        logger.info("Generating shipping label for order %s", order.id)
        if not self.base_url:
            return self._simulate(order)
        address = order.shipping_address
        payload = {
            "order_id": order.id,
            "order_number": order.order_number,
            "items": sum(i.quantity for i in order.items),
            "address": {
                "name": f"{address.first_name} {address.last_name}",
                "address1": address.address1,
                "city": address.city,
                "zip_code": address.zip_code,
                "country": address.country,
            } if address else None,
        }
        try:
            r = requests.post(f"{self.base_url}/labels", json=payload, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
            estimated = data.get("estimated_delivery")
            return {
                "success": True,
                "tracking_number": data.get("tracking_number"),
                "label_url": data.get("label_url"),
                "carrier": data.get("carrier", DEFAULT_CARRIER),
                "estimated_delivery": datetime.fromisoformat(estimated) if estimated else None,
            }
        except (requests.RequestException, ValueError, TypeError, AttributeError) as e:
            logger.warning("Shipping label generation failed for order %s: %s", order.id, e)
            return {"success": False, "error": str(e)}

    def _simulate(self, order) -> dict:
        tracking = f"TN{int(time.time() * 1000)}{uuid.uuid4().hex[:6].upper()}"
        return {
            "success": True,
            "tracking_number": tracking,
            "label_url": f"https://labels.example.com/{order.id}_{tracking}.pdf",
            "carrier": DEFAULT_CARRIER,
            "estimated_delivery": datetime.utcnow() + timedelta(days=3),
        }
