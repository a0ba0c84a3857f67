from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from randimg.core.request_id import RequestIdMiddleware, get_request_id_from_headers, new_request_id


def test_new_request_id_format() -> None:
    rid = new_request_id()
    assert rid.startswith("req_")
    assert len(rid) == len("req_") + 16


def test_get_request_id_from_headers_ignores_blank() -> None:
    assert get_request_id_from_headers({"X-Request-Id": "  "}) is None
    assert get_request_id_from_headers({"x-request-id": "req_x"}) == "req_x"
    assert get_request_id_from_headers(None) is None


def test_middleware_echoes_or_generates_request_id() -> None:
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)

    @app.get("/echo")
    async def _echo(request: Request) -> dict[str, str]:
        return {"rid": request.state.request_id}

    client = TestClient(app)
    given = client.get("/echo", headers={"X-Request-Id": "req_given"})
    generated = client.get("/echo")

    assert given.json() == {"rid": "req_given"}
    assert given.headers["X-Request-Id"] == "req_given"
    assert generated.headers["X-Request-Id"] == generated.json()["rid"]
    assert generated.json()["rid"].startswith("req_")
