"""Built-in webhook event handlers.

These only record the event; importing this module registers them.
"""

import logging
from typing import Any

from src.webhooks.registry import webhook_registry

logger = logging.getLogger(__name__)


@webhook_registry.handler("file.uploaded")
async def on_file_uploaded(data: dict[str, Any]) -> None:
    logger.info("File uploaded: %s", data.get("public_id") or data.get("url") or data)


@webhook_registry.handler("conversation.created")
async def on_conversation_created(data: dict[str, Any]) -> None:
    logger.info("New conversation: %s", data.get("conversationId") or data)


@webhook_registry.handler("message.sent")
async def on_message_sent(data: dict[str, Any]) -> None:
    logger.info("Message sent: %s", data.get("conversationId") or data)
