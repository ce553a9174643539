from quart import Blueprint

from .service import dashboard_stats, get_currencies, get_shop_settings, update_shop_settings
from ..common.auth import check_admin_credentials, end_session, require_admin, start_admin_session
from ..common.errors import Unauthorized
from ..common.http import json_body, ok
from ..common.validation import require_str

bp = Blueprint("admin", __name__)


@bp.post("/admin/login")
async def admin_login():
    data = await json_body()
    email = require_str(data, "email")
    password = require_str(data, "password")
    if not check_admin_credentials(email, password):
        raise Unauthorized("Invalid email or password")
    start_admin_session(email)
    return ok({"user": email, "role": "admin"})


@bp.post("/admin/logout")
async def admin_logout():
    end_session()
    return ok()


@bp.get("/dashboard")
@require_admin
async def dashboard():
    return ok(await dashboard_stats())


@bp.get("/settings")
async def settings_get():
    return ok(await get_shop_settings())


@bp.put("/settings")
@require_admin
async def settings_put():
    data = await json_body()
    return ok(await update_shop_settings(data))


@bp.get("/currencies")
async def currencies_list():
    return ok(await get_currencies())
