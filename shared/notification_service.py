"""
Notification Service for sweep outcome events
Publishes owner-addressed messages on a Redis channel; the chat front-end
subscribes and delivers them.
"""
import json
import logging
import uuid
from datetime import datetime, timezone

import redis

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, redis_client: redis.Redis, channel: str = "sweeper_notifications"):
        self.redis_client = redis_client
        self.notification_channel = channel

    @classmethod
    def from_settings(cls, settings) -> "NotificationService":
        client = redis.Redis(host=settings.redis_host, port=settings.redis_port, decode_responses=True)
        return cls(client, settings.notification_channel)

    def notify(self, owner_ref: int, message: str, category: str = "sweep") -> bool:
        """
        Publish a message for one owner.

        Delivery is fire-and-forget: failures are logged and reported as False,
        never raised.
        """
        try:
            payload = {
                "message_id": str(uuid.uuid4()),
                "owner_ref": owner_ref,
                "type": category,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "message": message,
            }
            result = self.redis_client.publish(
                self.notification_channel,
                json.dumps(payload, default=str)
            )
            logger.info(f"🔔 Published {category} notification for owner {owner_ref} ({result} subscribers)")
            return True
        except Exception as e:
            logger.error(f"Failed to send notification to owner {owner_ref}: {e}")
            return False
