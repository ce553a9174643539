from quart import Blueprint, request

from .ledger import bulk_set, inventory_report
from .service import (
    create_category,
    create_product,
    delete_category,
    delete_product,
    get_categories,
    get_category,
    get_product,
    get_products,
    patch_product,
    update_category,
    update_product,
)
from ..common.auth import require_admin
from ..common.http import json_body, ok, query_int, query_optional_int

bp = Blueprint("inventory", __name__)


@bp.get("/products")
async def products_list():
    items = await get_products(category_id=query_optional_int("categoryId"))
    return ok(items)


@bp.get("/products/<int:product_id>")
async def product_detail(product_id: int):
    return ok(await get_product(product_id))


@bp.post("/products")
@require_admin
async def products_create():
    data = await json_body()
    return ok(await create_product(data), 201)


@bp.put("/products/<int:product_id>")
@require_admin
async def product_update(product_id: int):
    data = await json_body()
    return ok(await update_product(product_id, data))


@bp.patch("/products/<int:product_id>")
@require_admin
async def product_patch(product_id: int):
    data = await json_body()
    return ok(await patch_product(product_id, data))


@bp.delete("/products/<int:product_id>")
@require_admin
async def product_delete(product_id: int):
    return ok(await delete_product(product_id))


@bp.get("/categories")
async def categories_list():
    return ok(await get_categories())


@bp.post("/categories")
@require_admin
async def categories_create():
    data = await json_body()
    return ok(await create_category(data), 201)


@bp.get("/categories/<category_ref>")
async def category_detail(category_ref: str):
    include_products = request.args.get("includeProducts", "").lower() == "true"
    return ok(await get_category(category_ref, include_products=include_products))


@bp.put("/categories/<int:category_id>")
@require_admin
async def category_update(category_id: int):
    data = await json_body()
    return ok(await update_category(category_id, data))


@bp.delete("/categories/<int:category_id>")
@require_admin
async def category_delete(category_id: int):
    return ok(await delete_category(category_id))


@bp.get("/inventory")
@require_admin
async def inventory_get():
    report = await inventory_report(
        low_stock_only=request.args.get("lowStockOnly", "").lower() == "true",
        category_id=query_optional_int("categoryId"),
        search=request.args.get("search") or None,
        page=query_int("page", 1),
        limit=query_int("limit", 50),
    )
    return ok(report)


@bp.patch("/inventory")
@require_admin
async def inventory_patch():
    data = await json_body()
    result = await bulk_set(data.get("updates"))
    return ok(result)
