import asyncio
import json
import logging

from quart import Blueprint, Response

from ..common.config import settings
from ..common.errors import ServiceUnavailable
from ..common.redis_client import get_redis

_logger = logging.getLogger(__name__)

bp = Blueprint("realtime", __name__)


async def _close_pubsub(pubsub) -> None:
    if pubsub is None:
        return
    try:
        await pubsub.unsubscribe(settings.REDIS_STOCK_CHANNEL)
        await pubsub.aclose()
    except Exception as e:
        _logger.debug("Stock pubsub cleanup failed | err=%s", e)


def _frame(data) -> str:
    # Allow both plain number and JSON payloads
    try:
        payload = json.loads(data) if isinstance(data, str) else data
    except ValueError:
        payload = {"stock": data}
    return f"event: stock\ndata: {json.dumps(payload)}\n\n"


@bp.get("/events")
async def sse_events():
    if not settings.REDIS_ENABLED:
        raise ServiceUnavailable("Stock updates stream is unavailable")

    async def gen():
        pubsub = None
        backoff = 1.0
        # Advise client on retry
        yield "retry: 3000\n\n"
        try:
            while True:
                try:
                    if pubsub is None:
                        r = await get_redis()
                        pubsub = r.pubsub(ignore_subscribe_messages=True)
                        await pubsub.subscribe(settings.REDIS_STOCK_CHANNEL)
                    message = await pubsub.get_message(timeout=5.0)
                    if message:
                        yield _frame(message.get("data"))
                    else:
                        # Keep-alive to prevent closes by proxies
                        yield ": keep-alive\n\n"
                    backoff = 1.0
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    _logger.warning("Stock stream redis error, retrying | backoff=%s err=%s", backoff, e)
                    yield f": redis-error, retrying in {int(backoff)}s\n\n"
                    await _close_pubsub(pubsub)
                    pubsub = None
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, 15.0)
        finally:
            await _close_pubsub(pubsub)

    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
        "Connection": "keep-alive",
    }
    return Response(gen(), mimetype="text/event-stream", headers=headers)
