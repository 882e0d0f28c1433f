"""Stripe-backed billing gateway."""

from __future__ import annotations

from typing import Any, Optional

import stripe

from ...config import settings


class StripeBillingGateway:
    def __init__(self, api_key: str | None = None) -> None:
        self.api_key = api_key or settings.stripe_api_key
        if not self.api_key:
            raise ValueError("Stripe API key is not configured.")
        self.client = stripe.StripeClient(self.api_key)

    def get_default_prices(self) -> dict[str, Optional[str]]:
        """Map active product id to its default price id (None when unpriced)."""
        prices: dict[str, Optional[str]] = {}
        products = self.client.products.list(
            params={"limit": 100, "active": True, "expand": ["data.default_price"]}
        )
        for product in products.auto_paging_iter():
            default_price = product.default_price
            if isinstance(default_price, str):
                prices[product.id] = default_price
            else:
                prices[product.id] = default_price.id if default_price else None
        return prices

    def create_subscription(self, customer_id: str, price_id: str, quantity: int, metadata: dict[str, str]) -> Any:
        return self.client.subscriptions.create(
            params={
                "customer": customer_id,
                "items": [{"price": price_id, "quantity": quantity}],
                "metadata": metadata,
                "payment_behavior": "allow_incomplete",
            }
        )
