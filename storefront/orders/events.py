import json
import logging
from typing import Any, Dict

from ..common.config import settings
from ..common.db import utcnow
from ..common.kafka_client import get_producer

_logger = logging.getLogger(__name__)

ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status_changed"


async def publish_order_event(event_type: str, order: Dict[str, Any]) -> bool:
    """Send an order lifecycle event to Kafka.

    The order change has already committed when this runs; a broker outage
    is logged and reported through the return value only.
    """
    if not settings.KAFKA_ENABLED:
        return False
    payload = {
        "type": event_type,
        "occurredAt": utcnow().isoformat(),
        "order": order,
    }
    try:
        producer = await get_producer()
        await producer.send_and_wait(
            settings.ORDER_EVENTS_TOPIC,
            json.dumps(payload).encode("utf-8"),
            key=str(order.get("id")).encode("utf-8"),
        )
    except Exception as e:
        _logger.warning("Order event publish failed | type=%s order_id=%s err=%s", event_type, order.get("id"), e)
        return False
    _logger.info("Published order event | type=%s order_id=%s topic=%s", event_type, order.get("id"), settings.ORDER_EVENTS_TOPIC)
    return True
