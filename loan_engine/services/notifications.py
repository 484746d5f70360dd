from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from loan_engine.core.settings import Settings, get_settings
from loan_engine.services.audit import serialize_for_audit
from loan_engine.utils.redis_client import get_redis_client, redis_key

logger = logging.getLogger(__name__)

LOAN_STATUS_CHANGED = "loan.status_changed"
ESCROW_COMPLETED = "escrow.completed"


class Notifier(Protocol):
    async def notify(self, event_type: str, loan_id, payload: dict[str, Any]) -> None: ...


def build_message(event_type: str, loan_id, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "event_type": event_type,
        "loan_id": str(loan_id),
        "payload": serialize_for_audit(payload),
    }


class RedisNotifier:
    """Publishes each event as JSON on the loan's channel."""

    def __init__(self, redis=None, channel_prefix: str | None = None) -> None:
        self._redis = redis
        self.channel_prefix = channel_prefix or get_settings().notification_channel_prefix

    def channel_for_loan(self, loan_id) -> str:
        return redis_key(self.channel_prefix, loan_id)

    async def notify(self, event_type: str, loan_id, payload: dict[str, Any]) -> None:
        redis = self._redis or get_redis_client()
        message = build_message(event_type, loan_id, payload)
        await redis.publish(self.channel_for_loan(loan_id), json.dumps(message))


class LogNotifier:
    async def notify(self, event_type: str, loan_id, payload: dict[str, Any]) -> None:
        logger.info(
            "Loan event %s",
            event_type,
            extra={"loan_id": str(loan_id), "event": build_message(event_type, loan_id, payload)},
        )


def get_notifier(config: Settings | None = None) -> Notifier:
    config = config or get_settings()
    if config.notification_backend == "redis":
        return RedisNotifier(channel_prefix=config.notification_channel_prefix)
    return LogNotifier()
