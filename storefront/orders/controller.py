from quart import Blueprint, request

from . import lifecycle
from .service import get_order, list_orders, place_order
from ..common.auth import require_admin
from ..common.http import json_body, ok, query_int
from ..common.validation import optional_str, require_str

bp = Blueprint("orders", __name__)


@bp.post("/orders")
async def orders_create():
    data = await json_body()
    order = await place_order(data)
    return ok({"orderId": order["id"], "orderNumber": order["orderNumber"], "order": order}, 201)


@bp.get("/orders")
@require_admin
async def orders_list():
    result = await list_orders(
        status=request.args.get("status"),
        buyer_email=request.args.get("buyerEmail"),
        search=request.args.get("search"),
        page=query_int("page", 1),
        limit=query_int("limit", 20),
    )
    return ok(result)


@bp.get("/orders/<order_ref>")
async def order_detail(order_ref: str):
    return ok(await get_order(order_ref))


@bp.patch("/orders/<int:order_id>")
@require_admin
async def order_update_status(order_id: int):
    data = await json_body()
    status = require_str(data, "status")
    order = await lifecycle.transition(order_id, status, optional_str(data, "notes"))
    return ok(order)


@bp.delete("/orders/<int:order_id>")
@require_admin
async def order_cancel(order_id: int):
    order = await lifecycle.cancel(order_id)
    return ok(order)
