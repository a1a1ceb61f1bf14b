import httpx
import pytest
from services.gateway_service.app import clients


class _FakeServiceClient:
    """Minimal stand-in for ServiceClient that records calls and returns a canned response."""

    base_url = "http://fake-service"

    def __init__(self, response: httpx.Response = None, error: Exception = None):
        self.response = response
        self.error = error
        self.calls = []

    async def request(self, method, path, *, headers=None, content=None) -> httpx.Response:
        self.calls.append(
            {"method": method, "path": path, "headers": headers or {}, "content": content}
        )
        if self.error is not None:
            raise self.error
        return self.response


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gateway_proxies_status_code_and_json(gateway_client, monkeypatch):
    """Ensure gateway surfaces downstream status codes and JSON bodies."""
    fake = _FakeServiceClient(httpx.Response(201, json={"created": True}))
    monkeypatch.setattr(clients, "members_client", fake)

    response = await gateway_client.post("/api/v1/members/registration", json={"a": 1})

    assert response.status_code == 201
    assert response.json() == {"created": True}
    assert fake.calls[0]["method"] == "POST"
    assert fake.calls[0]["path"] == "/members/registration"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gateway_proxies_non_json_payloads(gateway_client, monkeypatch):
    """Ensure gateway passes through non-JSON responses (e.g., CSV exports)."""
    csv_body = "name,container\nMask,Armoury\n"
    fake = _FakeServiceClient(
        httpx.Response(
            200,
            content=csv_body.encode(),
            headers={
                "Content-Type": "text/csv",
                "Content-Disposition": 'attachment; filename="items.csv"',
            },
        )
    )
    monkeypatch.setattr(clients, "inventory_client", fake)

    response = await gateway_client.get("/api/v1/inventory/items")

    assert response.status_code == 200
    assert response.text == csv_body
    assert response.headers["content-type"].startswith("text/csv")
    assert "content-disposition" in response.headers
    assert fake.calls[0]["path"] == "/inventory/items"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gateway_forwards_query_string(gateway_client, monkeypatch):
    fake = _FakeServiceClient(httpx.Response(200, json={"items": [], "total": 0}))
    monkeypatch.setattr(clients, "workshops_client", fake)

    await gateway_client.get("/api/v1/workshops", params={"status": "planned", "page": 2})

    assert fake.calls[0]["path"] == "/workshops?status=planned&page=2"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gateway_forwards_raw_webhook_body(gateway_client, monkeypatch):
    fake = _FakeServiceClient(httpx.Response(200, json={"received": True}))
    monkeypatch.setattr(clients, "members_client", fake)
    body = b'{"type":  "invoice.paid",\n "id": "evt_1"}'

    response = await gateway_client.post(
        "/api/v1/webhooks/stripe",
        content=body,
        headers={"Stripe-Signature": "t=1,v1=abc", "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    call = fake.calls[0]
    assert call["path"] == "/webhooks/stripe"
    assert call["content"] == body
    assert call["headers"]["stripe-signature"] == "t=1,v1=abc"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gateway_passes_through_204(gateway_client, monkeypatch):
    fake = _FakeServiceClient(httpx.Response(204))
    monkeypatch.setattr(clients, "inventory_client", fake)

    response = await gateway_client.delete("/api/v1/inventory/containers/abc")

    assert response.status_code == 204
    assert response.content == b""


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gateway_returns_503_when_service_unreachable(gateway_client, monkeypatch):
    fake = _FakeServiceClient(error=httpx.ConnectError("connection refused"))
    monkeypatch.setattr(clients, "workshops_client", fake)

    response = await gateway_client.get("/api/v1/workshops/member")

    assert response.status_code == 503
    assert response.json()["detail"].startswith("Service unavailable")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(gateway_client):
    response = await gateway_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
