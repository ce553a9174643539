import logging
from typing import Any, Dict, Mapping, Optional

from ..common.database import AsyncSessionLocal, fetch_products_by_ids, get_or_create_shop_settings
from ..common.errors import InvalidQuantity, ValidationError
from ..orders.service import place_order
from .store import CartEntry, CartStore

_logger = logging.getLogger(__name__)


class CartService:
    """Cart operations over an injected ``CartStore``.

    Prices are not stored in the cart. ``materialize`` reads the catalog on
    every call, so a price change shows up in carts immediately.
    """

    def __init__(self, store: CartStore):
        self.store = store

    async def add_item(
        self, cart_id: str, product_id: int, quantity: int, attributes: Optional[Mapping[str, str]] = None
    ) -> CartEntry:
        if quantity < 1:
            raise InvalidQuantity("Quantity must be at least 1")
        entry = await self.store.add(cart_id, product_id, quantity, dict(attributes or {}))
        _logger.debug("Cart item added | cart=%s key=%s qty=%s", cart_id, entry.key, entry.quantity)
        return entry

    async def set_quantity(
        self, cart_id: str, product_id: int, attributes: Optional[Mapping[str, str]], quantity: int
    ) -> Optional[CartEntry]:
        return await self.store.set(cart_id, product_id, dict(attributes or {}), quantity)

    async def remove(self, cart_id: str, product_id: int, attributes: Optional[Mapping[str, str]] = None) -> bool:
        return await self.store.remove(cart_id, product_id, dict(attributes or {}))

    async def clear(self, cart_id: str) -> None:
        await self.store.clear(cart_id)

    async def materialize(self, cart_id: str) -> Dict[str, Any]:
        entries = await self.store.entries(cart_id)
        products = await fetch_products_by_ids([e.product_id for e in entries], active_only=True)
        async with AsyncSessionLocal() as session:
            async with session.begin():
                shop = await get_or_create_shop_settings(session)
                currency, symbol = shop.currency, shop.currency_symbol

        items = []
        for entry in entries:
            product = products.get(entry.product_id)
            if product is None:
                # missing or deactivated products drop out of the view
                continue
            items.append(
                {
                    "key": entry.key,
                    "productId": entry.product_id,
                    "productName": product["name"],
                    "quantity": entry.quantity,
                    "price": product["price"],
                    "subtotal": round(product["price"] * entry.quantity, 2),
                    "selectedAttributes": dict(entry.attributes),
                    "imageUrl": product["imageUrl"],
                    "stockQty": product["stockQty"],
                }
            )
        return {
            "items": items,
            "total": round(sum(i["subtotal"] for i in items), 2),
            "itemCount": sum(i["quantity"] for i in items),
            "currency": currency,
            "currencySymbol": symbol,
        }

    async def checkout(self, cart_id: str, buyer: Mapping[str, Any]) -> Dict[str, Any]:
        cart = await self.materialize(cart_id)
        if not cart["items"]:
            raise ValidationError("Cart is empty")
        payload = dict(buyer)
        payload["items"] = [
            {
                "productId": item["productId"],
                "quantity": item["quantity"],
                "selectedAttributes": item["selectedAttributes"],
            }
            for item in cart["items"]
        ]
        order = await place_order(payload)
        await self.clear(cart_id)
        _logger.info("Cart checked out | cart=%s order_id=%s", cart_id, order["id"])
        return order
