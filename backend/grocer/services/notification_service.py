# Overview: Push notifications for order status changes; best-effort and never fatal to the caller.

"""
Notification Service

Order status changes are pushed to the device that placed the order, using
the push token it supplied (orders.fcm_token).

DELIVERY CONTRACT:
- fire-and-forget: called after the status write has committed
- every failure is logged and swallowed; order state is never affected
- Pending is not pushed. The legacy server sent a generic "Order Update"
  for it; the app already shows Pending right after checkout

BACKENDS (NOTIFICATION_BACKEND):
- "console":  log the message (development default)
- "fcm":      Firebase Cloud Messaging HTTP v1 API via httpx
- "disabled": drop everything
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import httpx
from flask import current_app

from ..models import Order
from ..models.orders import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_DECLINED,
    STATUS_DELIVERED,
    STATUS_PROCESSING,
)


FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

NOTIFIABLE_STATUSES = {
    STATUS_PROCESSING,
    STATUS_COMPLETED,
    STATUS_DELIVERED,
    STATUS_CANCELLED,
    STATUS_DECLINED,
}

_STATUS_MESSAGES = {
    STATUS_PROCESSING: ("Order Being Processed", "Your order #{code} is now being prepared."),
    STATUS_COMPLETED: ("Order Completed", "Your order #{code} has been completed."),
    STATUS_DELIVERED: ("Order Delivered!", "Your order #{code} has been delivered successfully."),
    STATUS_CANCELLED: ("Order Cancelled", "Your order #{code} has been cancelled."),
    STATUS_DECLINED: ("Order Declined", "Your order #{code} was declined. Please contact support."),
}


class NotificationError(Exception):
    """Raised by push backends; always caught by notify_status_change."""


@dataclass
class PushMessage:
    token: str
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)


@dataclass
class NotificationResult:
    sent: bool
    backend: str
    message_id: str | None = None
    error: str | None = None


class PushBackend(Protocol):
    name: str

    def send(self, message: PushMessage) -> str | None:
        ...


class ConsolePushBackend:
    name = "console"

    def send(self, message: PushMessage) -> str | None:
        current_app.logger.info(
            "PUSH %s: %s - %s %s", message.token[:12], message.title, message.body, message.data
        )
        return None


class FcmPushBackend:
    """
    Sends through the FCM HTTP v1 endpoint.

    The OAuth access token is minted outside this service (deployment
    secret rotation) and passed in via FCM_ACCESS_TOKEN.
    """
    name = "fcm"

    def __init__(self, project_id: str, access_token: str, timeout: float = 5.0, client: httpx.Client | None = None):
        self.url = FCM_SEND_URL.format(project_id=project_id)
        self.access_token = access_token
        self.timeout = timeout
        self.client = client

    def send(self, message: PushMessage) -> str | None:
        payload = {
            "message": {
                "token": message.token,
                "notification": {"title": message.title, "body": message.body},
                "data": message.data,
            }
        }
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            if self.client is not None:
                response = self.client.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            else:
                response = httpx.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotificationError(f"FCM HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise NotificationError(f"FCM transport error: {exc}") from exc
        return response.json().get("name")


def get_push_backend() -> PushBackend | None:
    """Build the configured backend; None when notifications are disabled or misconfigured."""
    backend = (current_app.config.get("NOTIFICATION_BACKEND") or "disabled").lower()
    if backend == "console":
        return ConsolePushBackend()
    if backend == "fcm":
        project_id = current_app.config.get("FCM_PROJECT_ID")
        access_token = current_app.config.get("FCM_ACCESS_TOKEN")
        if not project_id or not access_token:
            current_app.logger.warning("NOTIFICATION_BACKEND=fcm but FCM_PROJECT_ID/FCM_ACCESS_TOKEN missing")
            return None
        return FcmPushBackend(
            project_id=project_id,
            access_token=access_token,
            timeout=current_app.config.get("FCM_TIMEOUT_SECONDS", 5.0),
        )
    return None


def build_status_message(order: Order, status: str) -> PushMessage:
    title, body = _STATUS_MESSAGES.get(
        status,
        ("Order Update", "Your order #{code} status has been updated to " + status + "."),
    )
    return PushMessage(
        token=order.fcm_token,
        title=title,
        body=body.format(code=order.order_code),
        data={"orderId": str(order.id), "orderCode": order.order_code, "status": status},
    )


def notify_status_change(order: Order, status: str) -> NotificationResult | None:
    """
    Push a status-change message for an order.

    Returns None when nothing was attempted (status not notifiable, no
    push token, backend disabled). Never raises.
    """
    if status not in NOTIFIABLE_STATUSES or not order.fcm_token:
        return None

    try:
        backend = get_push_backend()
        if backend is None:
            return None
        message = build_status_message(order, status)
        message_id = backend.send(message)
    except Exception as exc:  # noqa: BLE001
        current_app.logger.warning(
            "Push notification failed for order %s (%s): %s", order.order_code, status, exc
        )
        return NotificationResult(sent=False, backend=_backend_name(), error=str(exc))

    return NotificationResult(sent=True, backend=backend.name, message_id=message_id)


def _backend_name() -> str:
    return (current_app.config.get("NOTIFICATION_BACKEND") or "disabled").lower()

