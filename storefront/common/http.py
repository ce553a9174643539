from typing import Any, Optional

from quart import jsonify, request

from .validation import require_body


def ok(data: Any = None, status: int = 200):
    return jsonify({"success": True, "data": data}), status


async def json_body() -> dict:
    data = await request.get_json(force=True, silent=True)
    return require_body(data)


def query_int(name: str, default: int) -> int:
    raw = request.args.get(name)
    try:
        return int(raw) if raw is not None else default
    except ValueError:
        return default


def query_optional_int(name: str) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None
