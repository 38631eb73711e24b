import json
import httpx
import pytest

from orderflow.errors import TransientIOError
from orderflow.tools.messaging import MessagingGateway

def make_gateway(handler, api_key="secret"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MessagingGateway(client, "https://gateway.test/v1/123/", api_key=api_key, timeout=1.0)

@pytest.mark.asyncio
async def test_send_text_payload():
    requests = []
    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})
    gateway = make_gateway(handler)

    result = await gateway.send_text("+541135562673", "Hola")

    assert result["messages"][0]["id"] == "wamid.1"
    request = requests[0]
    assert str(request.url) == "https://gateway.test/v1/123/messages"
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {
        "messaging_product": "whatsapp",
        "to": "541135562673",
        "type": "text",
        "text": {"body": "Hola"},
    }

@pytest.mark.asyncio
async def test_send_template_payload():
    bodies = []
    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={})
    gateway = make_gateway(handler, api_key=None)

    await gateway.send_template("+541135562673", "order_ready", ["ORD-1", 1500])

    template = bodies[0]["template"]
    assert template["name"] == "order_ready"
    assert template["language"] == {"code": "es_AR"}
    assert template["components"][0]["parameters"] == [
        {"type": "text", "text": "ORD-1"},
        {"type": "text", "text": "1500"},
    ]

@pytest.mark.asyncio
async def test_error_status_is_transient():
    gateway = make_gateway(lambda request: httpx.Response(429, text="rate limited"))
    with pytest.raises(TransientIOError, match="429"):
        await gateway.send_text("+541135562673", "Hola")

@pytest.mark.asyncio
async def test_timeout_is_transient():
    def handler(request):
        raise httpx.ConnectTimeout("no route", request=request)
    gateway = make_gateway(handler)
    with pytest.raises(TransientIOError, match="timed out"):
        await gateway.send_text("+541135562673", "Hola")
