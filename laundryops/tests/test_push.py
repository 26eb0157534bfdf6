import httpx
import pytest

from laundryops.core.config import settings
from laundryops.services import push
from laundryops.services.push import send_push

PAYLOAD = {
    "to": "ExponentPushToken[alice]",
    "title": "Order Ready",
    "body": "Your order #DOW-260101-0001 is ready for pickup/delivery.",
    "data": {"order_id": 1, "order_number": "DOW-260101-0001", "status": "READY"},
}


@pytest.fixture
def gateway(monkeypatch):
    """Route the push client through a mock transport answering with queued status codes."""
    calls = []
    statuses = []
    real_client = httpx.AsyncClient

    def handler(request):
        calls.append(request)
        return httpx.Response(statuses.pop(0) if statuses else 200, json={"ok": True})

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(push.httpx, "AsyncClient", client_factory)
    return calls, statuses


class TestPushDelivery:

    @pytest.mark.asyncio
    async def test_successful_delivery(self, gateway):
        calls, _ = gateway
        assert await send_push(PAYLOAD, retries=1) is True
        assert len(calls) == 1
        assert str(calls[0].url) == settings.PUSH_GATEWAY_URL

    @pytest.mark.asyncio
    async def test_retries_after_gateway_error(self, gateway):
        calls, statuses = gateway
        statuses.extend([503, 200])
        assert await send_push(PAYLOAD, retries=2) is True
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self, gateway):
        calls, statuses = gateway
        statuses.extend([500])
        assert await send_push(PAYLOAD, retries=1) is False
        assert len(calls) == 1
