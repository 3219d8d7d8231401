"""
backend/fieldbook/services/events.py

Hold events for the confirmation worker.

Queue:
- events:p2p — one JSON message per event, consumed in order (LPOP)

Message:
    {"type": "hold_created", "holdId": ..., "startAt": "...", ..., "ts": 1906000000}
"""

import json
import time
import logging
from datetime import datetime

from ..redis_client import redis_client

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def _encode(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def emit_event(event_type: str, payload: dict) -> None:
    """
    Push an event onto events:p2p.

    Keys are sent camelCase, datetimes as ISO-8601. Redis errors are logged,
    never raised: the hold row is already committed.
    """
    event = {"type": event_type}
    event.update({_camel(k): _encode(v) for k, v in payload.items()})
    event["ts"] = int(time.time())

    try:
        redis_client.rpush(P2P_QUEUE, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
