import json
import logging
import random

from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.responses import JSONResponse

from api.gharse.middlewares.logging import LoggingMiddleware
from api.gharse.middlewares.request_id import RequestIdMiddleware
from api.gharse.obs.logging import JsonFormatter


def _make_app():
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    test_app.add_middleware(LoggingMiddleware)

    @test_app.get("/health")
    async def health():
        return {"ok": True}

    @test_app.post("/echo")
    async def echo(data: dict):
        return data

    @test_app.post("/api/orders/fail")
    async def fail():
        return JSONResponse({}, status_code=409)

    @test_app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    return test_app


def _api_messages(caplog):
    return [r.getMessage() for r in caplog.records if r.name == "api"]


def test_request_id_propagation(monkeypatch, caplog):
    monkeypatch.setattr("api.gharse.middlewares.logging.LOG_SAMPLE_2XX", 1)
    client = TestClient(_make_app())
    with caplog.at_level(logging.INFO, logger="api"):
        resp = client.get("/health", headers={"X-Request-ID": "abc"})
    assert resp.headers["X-Request-ID"] == "abc"
    data = json.loads(_api_messages(caplog)[1])
    assert data["req_id"] == "abc"
    assert data["status"] == 200


def test_customer_details_are_redacted(monkeypatch, caplog):
    monkeypatch.setattr("api.gharse.middlewares.logging.LOG_SAMPLE_2XX", 1)
    client = TestClient(_make_app())
    payload = {
        "orderId": "order-1",
        "customer": {
            "name": "Asha Rao",
            "email": "asha@example.com",
            "phone": "9876543210",
        },
        "deliveryAddress": {"street": "12 MG Road", "city": "Hyderabad"},
        "customerId": "cust-1",
    }
    with caplog.at_level(logging.INFO, logger="api"):
        client.post("/echo", json=payload, params={"email": "q@example.com"})
    inbound = json.loads(_api_messages(caplog)[0])
    body = inbound["body"]
    for key in ("name", "email", "phone"):
        assert body["customer"][key] == "***"
    assert body["deliveryAddress"]["street"] == "***"
    assert body["deliveryAddress"]["city"] == "Hyderabad"
    assert body["customerId"] == "***"
    assert body["orderId"] == "order-1"
    assert inbound["query"]["email"] == "***"


def test_failures_always_logged(monkeypatch, caplog):
    monkeypatch.setattr("api.gharse.middlewares.logging.LOG_SAMPLE_2XX", 0)
    client = TestClient(_make_app())
    with caplog.at_level(logging.INFO, logger="api"):
        client.post("/api/orders/fail")
        client.get("/health")
    messages = _api_messages(caplog)
    assert len(messages) == 2
    assert json.loads(messages[1])["status"] == 409


def test_access_log_count_with_app_logging_configured(monkeypatch, caplog):
    import api.gharse.main  # noqa: F401  configures root logging at INFO

    monkeypatch.setattr("api.gharse.middlewares.logging.LOG_SAMPLE_2XX", 0)
    client = TestClient(_make_app())
    with caplog.at_level(logging.INFO, logger="api"):
        client.post("/api/orders/fail")
        client.get("/health")
    assert len(_api_messages(caplog)) == 2


def test_unhandled_error_envelope(monkeypatch, caplog):
    monkeypatch.setattr("api.gharse.middlewares.logging.LOG_SAMPLE_2XX", 0)
    client = TestClient(_make_app(), raise_server_exceptions=False)
    with caplog.at_level(logging.INFO, logger="api"):
        resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "SERVER_ERROR"
    assert body["error_id"]


def test_2xx_sampling(monkeypatch, caplog):
    monkeypatch.setattr("api.gharse.middlewares.logging.LOG_SAMPLE_2XX", 0.1)
    random.seed(1)
    client = TestClient(_make_app())
    with caplog.at_level(logging.INFO, logger="api"):
        for _ in range(100):
            client.get("/health")
    logged = len(_api_messages(caplog)) // 2
    assert 3 <= logged <= 20


def test_json_logger_redaction():
    formatter = JsonFormatter()
    record = logging.LogRecord(
        "orders",
        logging.INFO,
        __file__,
        0,
        "sms to +91 9998887776 failed, email foo@example.com",
        (),
        None,
    )
    record.order_id = "order-1"
    data = json.loads(formatter.format(record))
    msg = data["msg"]
    assert "9998887776" not in msg
    assert "foo@example.com" not in msg
    assert msg.count("***") == 2
    assert data["order_id"] == "order-1"
    assert data["logger"] == "orders"


def test_slow_query_logging(monkeypatch, caplog):
    from sqlalchemy import create_engine, text

    from api.gharse.obs import queries

    monkeypatch.setattr(queries, "SLOW_QUERY_MS", -1)
    engine = create_engine("sqlite://")
    queries.add_query_logger(engine, "orders")
    with caplog.at_level(logging.WARNING, logger="obs"):
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    assert any("slow query" in m and "db=orders" in m for m in caplog.messages)
