import json

import httpx
import pytest

from grocer.models import Order
from grocer.services import notification_service
from grocer.services.notification_service import (
    ConsolePushBackend,
    FcmPushBackend,
    NotificationError,
    PushMessage,
    build_status_message,
    get_push_backend,
    notify_status_change,
)


def _order(**fields):
    values = {"id": "65a1b2c3d4e5f60718293a4b", "order_code": "ORD123456", "fcm_token": "tok-1"}
    values.update(fields)
    return Order(**values)


def _backend(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return FcmPushBackend(project_id="grocer-demo", access_token="secret", client=client)


def test_fcm_backend_posts_v1_message():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"name": "projects/grocer-demo/messages/42"})

    message = PushMessage(token="tok-1", title="Order Completed", body="done", data={"status": "Completed"})
    message_id = _backend(handler).send(message)

    assert message_id == "projects/grocer-demo/messages/42"
    assert seen["url"] == "https://fcm.googleapis.com/v1/projects/grocer-demo/messages:send"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["message"]["token"] == "tok-1"
    assert seen["body"]["message"]["notification"] == {"title": "Order Completed", "body": "done"}


def test_fcm_backend_wraps_http_errors():
    backend = _backend(lambda request: httpx.Response(404, json={"error": "UNREGISTERED"}))
    with pytest.raises(NotificationError, match="404"):
        backend.send(PushMessage(token="stale", title="t", body="b"))


def test_fcm_backend_wraps_transport_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NotificationError, match="transport"):
        _backend(handler).send(PushMessage(token="tok", title="t", body="b"))


def test_status_message_texts(app):
    with app.app_context():
        message = build_status_message(_order(), "Processing")
    assert message.title == "Order Being Processed"
    assert message.body == "Your order #ORD123456 is now being prepared."
    assert message.data == {
        "orderId": "65a1b2c3d4e5f60718293a4b",
        "orderCode": "ORD123456",
        "status": "Processing",
    }


def test_pending_and_tokenless_orders_are_not_notified(app):
    with app.app_context():
        assert notify_status_change(_order(), "Pending") is None
        assert notify_status_change(_order(fcm_token=None), "Completed") is None


def test_backend_selection(app, monkeypatch):
    with app.app_context():
        monkeypatch.setitem(app.config, "NOTIFICATION_BACKEND", "console")
        assert isinstance(get_push_backend(), ConsolePushBackend)

        monkeypatch.setitem(app.config, "NOTIFICATION_BACKEND", "fcm")
        monkeypatch.setitem(app.config, "FCM_PROJECT_ID", None)
        assert get_push_backend() is None

        monkeypatch.setitem(app.config, "FCM_PROJECT_ID", "grocer-demo")
        monkeypatch.setitem(app.config, "FCM_ACCESS_TOKEN", "secret")
        assert isinstance(get_push_backend(), FcmPushBackend)

        monkeypatch.setitem(app.config, "NOTIFICATION_BACKEND", "disabled")
        assert get_push_backend() is None


def test_console_backend_reports_sent(app, monkeypatch):
    monkeypatch.setitem(app.config, "NOTIFICATION_BACKEND", "console")
    with app.app_context():
        result = notify_status_change(_order(), "Cancelled")
    assert result.sent is True
    assert result.backend == "console"


def test_unexpected_backend_error_is_swallowed(app, monkeypatch):
    class _Exploding:
        name = "exploding"

        def send(self, message):
            raise RuntimeError("boom")

    monkeypatch.setattr(notification_service, "get_push_backend", lambda: _Exploding())
    with app.app_context():
        result = notify_status_change(_order(), "Declined")
    assert result.sent is False
    assert result.error == "boom"
