from __future__ import annotations

import re
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from api.api import create_app
from config import AppSettings
from db.key_value import MemoryStorage
from notifications.email_service import EmailService
from services.context import AppContext, build_context
from services.rate_sources import StaticRatesSource
from tests.helpers.fakes import FailingRatesSource


@pytest.fixture()
def client(context: AppContext) -> TestClient:
    return TestClient(create_app(context=context))


@pytest.fixture()
def smtp(context: AppContext) -> MagicMock:
    smtp = MagicMock()
    factory = MagicMock()
    factory.return_value.__enter__.return_value = smtp
    context.email = EmailService(host="smtp.example.com", sender="compliance@fastcripto.com", smtp_factory=factory)
    return smtp


def _sent_code(smtp: MagicMock) -> str:
    message = smtp.send_message.call_args.args[0]
    match = re.search(r"\b(\d{6})\b", message.get_body(preferencelist=("plain",)).get_content())
    assert match is not None
    return match.group(1)


def test_root_and_health(client: TestClient) -> None:
    assert client.get("/").json()["success"] is True

    health = client.get("/health").json()
    assert health == {"status": "ok", "rates_last_updated": None, "rates_stale": True}


def test_rates_are_fetched_on_first_request(client: TestClient, context: AppContext) -> None:
    response = client.get("/api/rates")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["stale"] is False
    assert body["source"] == "static"
    assert body["rates"]["BTC"]["USD"] == "60000"
    assert client.get("/health").json()["rates_stale"] is False


def test_stale_rates_are_served_then_revalidated(client: TestClient, context: AppContext) -> None:
    source = context.rates.source
    assert isinstance(source, StaticRatesSource)
    client.get("/api/rates")
    context.rates.clear_cache()

    body = client.get("/api/rates").json()

    assert body["stale"] is True
    assert body["rates"]["ETH"]["USD"] == "3000"
    assert source.fetch_count == 2
    assert not context.rates.is_stale


def test_convert(client: TestClient, context: AppContext) -> None:
    response = client.get("/api/convert", params={"amount": "2", "from": "btc", "to": "usd"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["from_currency"] == "BTC"
    assert body["to_currency"] == "USD"
    assert body["converted_amount"] == "120000"
    assert body["rate"] == "60000"
    assert len(context.history) == 1


def test_convert_without_recording(client: TestClient, context: AppContext) -> None:
    client.get("/api/convert", params={"amount": "1", "from": "ETH", "to": "EUR", "record": "false"})

    assert len(context.history) == 0


@pytest.mark.parametrize(
    ("params", "status_code", "message"),
    [
        ({"amount": "-1", "from": "BTC", "to": "USD"}, 400, "Amount must be >= 0"),
        ({"amount": "lots", "from": "BTC", "to": "USD"}, 400, "finite number"),
        ({"amount": "1e999999", "from": "BTC", "to": "USD"}, 400, "too large"),
        ({"amount": "1", "from": "BTC", "to": "XYZ"}, 400, "Unsupported currency: XYZ"),
        ({"amount": "1", "from": "BTC", "to": "BNB"}, 404, "No conversion rate available for BTC to BNB"),
        ({"amount": "1", "from": "BTC"}, 422, "to"),
    ],
)
def test_convert_errors_use_envelope(
    client: TestClient, params: dict[str, str], status_code: int, message: str
) -> None:
    response = client.get("/api/convert", params=params)

    assert response.status_code == status_code
    body = response.json()
    assert body["success"] is False
    assert message in body["message"]


def test_unknown_route(client: TestClient) -> None:
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Route not found"}


def test_upstream_failure_without_rates_is_bad_gateway(settings: AppSettings) -> None:
    context = build_context(settings, storage=MemoryStorage(), source=FailingRatesSource("rates api down"))
    client = TestClient(create_app(context=context))

    response = client.get("/api/rates")

    assert response.status_code == 502
    assert response.json() == {"success": False, "message": "rates api down"}


def test_unexpected_errors_are_hidden(context: AppContext, monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(force: bool = False) -> None:
        raise RuntimeError("secret detail")

    monkeypatch.setattr(context.rates, "refresh", boom)
    client = TestClient(create_app(context=context), raise_server_exceptions=False)

    response = client.get("/api/rates")

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error"}


def test_email_verification_flow(client: TestClient, smtp: MagicMock) -> None:
    sent = client.post("/api/email/verification/send", json={"email": "ana@example.com", "name": "Ana"})
    assert sent.status_code == 200
    assert sent.json()["expires_in_minutes"] == 30
    code = _sent_code(smtp)

    wrong = "000000" if code != "000000" else "111111"
    rejected = client.post("/api/email/verification/verify", json={"email": "ana@example.com", "code": wrong})
    assert rejected.status_code == 400
    assert rejected.json() == {"success": False, "message": "Invalid verification code"}

    verified = client.post("/api/email/verification/verify", json={"email": "ANA@example.com", "code": code})
    assert verified.status_code == 200
    assert verified.json() == {"success": True, "message": "Email verified"}


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ({}, "Email is required"),
        ({"email": "   "}, "Email is required"),
        ({"email": "not-an-email"}, "Invalid email address"),
    ],
)
def test_send_verification_validates_email(
    client: TestClient, smtp: MagicMock, body: dict[str, str], message: str
) -> None:
    response = client.post("/api/email/verification/send", json=body)

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": message}
    smtp.send_message.assert_not_called()


def test_send_verification_reports_smtp_failure(client: TestClient, smtp: MagicMock, context: AppContext) -> None:
    smtp.send_message.side_effect = OSError("connection reset")

    response = client.post("/api/email/verification/send", json={"email": "ana@example.com"})

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert context.verification_codes.verify("ana@example.com", "123456").value == "missing"


def test_verify_without_pending_code(client: TestClient) -> None:
    response = client.post("/api/email/verification/verify", json={"email": "ana@example.com", "code": "123456"})

    assert response.status_code == 400
    assert "No verification code" in response.json()["message"]
