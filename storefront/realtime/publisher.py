import json
import logging
from typing import Dict

from ..common.config import settings
from ..common.redis_client import get_redis

_logger = logging.getLogger(__name__)


async def publish_stock_updates(levels: Dict[int, int]) -> None:
    """Announce new stock levels on the Redis stock channel.

    Runs after the database change has committed, so a Redis outage is
    logged and otherwise ignored.
    """
    if not levels or not settings.REDIS_ENABLED:
        return
    try:
        r = await get_redis()
        for product_id, stock in levels.items():
            await r.publish(settings.REDIS_STOCK_CHANNEL, json.dumps({"product_id": product_id, "stock": stock}))
    except Exception as e:
        _logger.warning("Stock update publish failed | products=%s err=%s", sorted(levels), e)
        return
    _logger.info("Published stock updates via Redis | products=%s channel=%s", sorted(levels), settings.REDIS_STOCK_CHANNEL)
