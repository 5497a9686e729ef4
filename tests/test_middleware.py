"""Middleware: request ids, CORS and the JSON error shape."""

from httpx import AsyncClient


async def test_request_id_generated(client: AsyncClient):
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 36


async def test_request_id_preserved(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-Id": "trace-abc-123"})
    assert response.headers["x-request-id"] == "trace-abc-123"


async def test_cors_preflight(client: AsyncClient):
    response = await client.options(
        "/api/v1/habits",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "PUT",
            "Access-Control-Request-Headers": "Authorization",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


async def test_cors_exposes_request_id(client: AsyncClient):
    response = await client.get("/health", headers={"Origin": "http://localhost:5173"})
    assert "x-request-id" in response.headers["access-control-expose-headers"].lower()


async def test_unknown_route_is_json(client: AsyncClient):
    response = await client.get("/api/v1/nowhere")
    assert response.status_code == 404
    assert response.json() == {"detail": "Not Found"}
