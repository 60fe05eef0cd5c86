"""Webhook delivery system for AccessFeed.

Provides a validated webhook registry and HMAC-signed delivery with
exponential backoff retry and duplicate suppression.

Example:
    ```python
    from accessfeed.webhooks import DedupWindow, DeliveryEngine, WebhookRegistry

    registry = WebhookRegistry(InMemoryWebhookStore())
    engine = DeliveryEngine(registry, InMemoryDeliveryStore(), DedupWindow(), scheduler)

    await engine.trigger_webhook("door.offline", {"eventId": "evt_1", "entityName": "Lobby"})
    ```
"""

from .dedup import DedupWindow, dedup_key
from .delivery import CONFIG_GONE_MESSAGE, DeliveryEngine, PermanentFailureHandler
from .mapping import WEBHOOK_EVENT_MAP, webhook_event_for, webhook_payload
from .registry import WebhookRegistry, validate_events, validate_url
from .signature import SIGNATURE_PREFIX, sign, signature_header, verify

__all__ = [
    "CONFIG_GONE_MESSAGE",
    "SIGNATURE_PREFIX",
    "WEBHOOK_EVENT_MAP",
    "DedupWindow",
    "DeliveryEngine",
    "PermanentFailureHandler",
    "WebhookRegistry",
    "dedup_key",
    "sign",
    "signature_header",
    "validate_events",
    "validate_url",
    "verify",
    "webhook_event_for",
    "webhook_payload",
]
