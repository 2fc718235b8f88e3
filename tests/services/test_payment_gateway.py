"""Tests for the HTTP payment gateway adapter."""

import pytest
import requests

from app.services import payment_gateway
from app.services.payment_gateway import HttpPaymentGateway
from factories import make_card


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")


def test_approval_sends_idempotency_key(monkeypatch):
    sent = []

    def post(url, json, headers, timeout):
        sent.append((url, headers, timeout))
        return FakeResponse(200, {"status": "succeeded", "id": "ch_1"})

    monkeypatch.setattr(payment_gateway.requests, "post", post)

    result = HttpPaymentGateway("http://pay.test/", timeout=5).charge(1500, "USD", make_card(), "chk-1")

    assert result.success
    assert result.transaction_id == "ch_1"
    url, headers, timeout = sent[0]
    assert url == "http://pay.test/charges"
    assert headers == {"Idempotency-Key": "chk-1"}
    assert 0 < timeout <= 5


def test_402_is_a_decline(monkeypatch):
    monkeypatch.setattr(
        payment_gateway.requests,
        "post",
        lambda url, json, headers, timeout: FakeResponse(402, {"reason": "Insufficient funds"}),
    )

    result = HttpPaymentGateway("http://pay.test", timeout=5).charge(1500, "USD", make_card(), "chk-1")

    assert not result.success
    assert result.failure_reason == "Insufficient funds"


def test_transport_errors_are_retried(monkeypatch):
    attempts = []

    def post(url, json, headers, timeout):
        attempts.append(timeout)
        if len(attempts) == 1:
            raise requests.ConnectionError("reset")
        return FakeResponse(200, {"status": "succeeded", "id": "ch_2"})

    monkeypatch.setattr(payment_gateway.requests, "post", post)

    result = HttpPaymentGateway("http://pay.test", timeout=10).charge(1500, "USD", make_card(), "chk-1")

    assert result.success
    assert len(attempts) == 2
    # the second attempt only gets what is left of the budget
    assert attempts[1] < attempts[0]


def test_retries_stop_at_the_deadline(monkeypatch):
    attempts = []

    def post(url, json, headers, timeout):
        attempts.append(timeout)
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(payment_gateway.requests, "post", post)

    with pytest.raises(requests.RequestException):
        HttpPaymentGateway("http://pay.test", timeout=0.1).charge(1500, "USD", make_card(), "chk-1")

    # backoff starts at 0.3s, past the 0.1s budget, so nothing is sent again
    assert len(attempts) == 1
