import secrets

from quart import Blueprint, current_app, g, request

from .service import CartService
from ..common.config import settings
from ..common.database import fetch_product
from ..common.errors import NotFound
from ..common.http import json_body, ok
from ..common.validation import optional_attributes, require_int

bp = Blueprint("cart", __name__)


def _cart_service() -> CartService:
    return current_app.extensions["cart_service"]


def _cart_id() -> str:
    cart_id = request.cookies.get(settings.CART_COOKIE_NAME)
    if not cart_id:
        cart_id = secrets.token_urlsafe(16)
        g.new_cart_id = cart_id
    return cart_id


@bp.after_app_request
async def issue_cart_cookie(response):
    new_id = g.get("new_cart_id")
    if new_id:
        response.set_cookie(
            settings.CART_COOKIE_NAME,
            new_id,
            max_age=settings.CART_TTL_SECONDS,
            httponly=True,
            samesite="Lax",
        )
    return response


@bp.get("/cart")
async def cart_get():
    return ok(await _cart_service().materialize(_cart_id()))


@bp.post("/cart")
async def cart_add():
    data = await json_body()
    product_id = require_int(data, "productId")
    quantity = require_int(data, "quantity", minimum=1)
    attributes = optional_attributes(data)
    product = await fetch_product(product_id)
    if product is None or not product["isActive"]:
        raise NotFound("Product not found or unavailable")
    cart_id = _cart_id()
    service = _cart_service()
    await service.add_item(cart_id, product_id, quantity, attributes)
    return ok(await service.materialize(cart_id))


@bp.put("/cart")
async def cart_update():
    data = await json_body()
    product_id = require_int(data, "productId")
    quantity = require_int(data, "quantity")
    cart_id = _cart_id()
    service = _cart_service()
    await service.set_quantity(cart_id, product_id, optional_attributes(data), quantity)
    return ok(await service.materialize(cart_id))


@bp.delete("/cart")
async def cart_delete():
    data = await request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        data = {}
    cart_id = _cart_id()
    service = _cart_service()
    if data.get("productId") is not None:
        await service.remove(cart_id, require_int(data, "productId"), optional_attributes(data))
    else:
        await service.clear(cart_id)
    return ok(await service.materialize(cart_id))


@bp.post("/cart/checkout")
async def cart_checkout():
    data = await json_body()
    order = await _cart_service().checkout(_cart_id(), data)
    return ok({"orderId": order["id"], "orderNumber": order["orderNumber"], "order": order}, 201)
