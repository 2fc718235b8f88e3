"""Payment gateway adapters.

PaymentGateway is the port the payment service talks to. SimulatedGateway
approves or declines locally (dev/test); HttpPaymentGateway forwards the
charge to an external processor over HTTP.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import time
from uuid import uuid4

import requests

from app.domain.payment import PaymentInstrument
from app.utils.retry import http_retry
from app.utils.settings import PAYMENT_GATEWAY_URL, PAYMENT_TIMEOUT_SECONDS
from app.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    """Result of a charge attempt as reported by the gateway."""

    success: bool
    transaction_id: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def charge(
        self,
        amount_minor: int,
        currency: str,
        instrument: PaymentInstrument,
        idempotency_key: str,
    ) -> ChargeResult:
        """Authorize a charge of ``amount_minor`` cents."""
        ...


# Well-known test card numbers and how the simulator answers them.
DECLINING_CARDS = {
    "4000000000000002": "Card declined",
    "4000000000009995": "Insufficient funds",
    "4000000000000069": "Expired card",
    "4000000000000127": "Incorrect CVC",
}


class SimulatedGateway(PaymentGateway):
    """Configurable in-process gateway."""

    def __init__(self, latency: float = 0.0) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.latency = latency
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Card declined",
        latency: float | None = None,
    ) -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        if latency is not None:
            self.latency = latency

    def charge(
        self,
        amount_minor: int,
        currency: str,
        instrument: PaymentInstrument,
        idempotency_key: str,
    ) -> ChargeResult:
        self.calls.append(
            {
                "amount_minor": amount_minor,
                "currency": currency,
                "last4": instrument.last4,
                "idempotency_key": idempotency_key,
            }
        )
        if self.latency:
            time.sleep(self.latency)

        declined = DECLINING_CARDS.get(instrument.digits)
        if declined:
            return ChargeResult(success=False, failure_reason=declined)
        if not self.should_succeed:
            return ChargeResult(success=False, failure_reason=self.failure_reason)
        return ChargeResult(success=True, transaction_id=f"sim_txn_{uuid4().hex[:16]}")


class HttpPaymentGateway(PaymentGateway):
    """Charges through an external processor's REST endpoint.

    Retries share one deadline of ``timeout`` seconds, so nothing is still
    being sent after the authorizer has given up on the charge.
    """

    def __init__(self, base_url: str | None = None, timeout: float = PAYMENT_TIMEOUT_SECONDS):
        self.base_url = (base_url or PAYMENT_GATEWAY_URL).rstrip("/")
        self.timeout = timeout
        self._post_charge = http_retry(max_delay=timeout)(self._post_charge_once)

    # the idempotency key makes transport-level retries safe: the processor
    # answers a repeated key with the original result
    def _post_charge_once(self, payload: dict, idempotency_key: str, deadline: float) -> requests.Response:
        url = f"{self.base_url}/charges"
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise requests.Timeout(f"Payment deadline passed before POST {url}")
        logger.info(f"PaymentGateway POST {url}", idempotency_key=idempotency_key)
        return requests.post(
            url,
            json=payload,
            headers={"Idempotency-Key": idempotency_key},
            timeout=remaining,
        )

    def charge(
        self,
        amount_minor: int,
        currency: str,
        instrument: PaymentInstrument,
        idempotency_key: str,
    ) -> ChargeResult:
        payload = {
            "amount": amount_minor,
            "currency": currency,
            "payment_method": instrument.payment_method,
            "card": {
                "number": instrument.digits,
                "exp_month": instrument.expiry_month,
                "exp_year": instrument.expiry_year,
                "cvc": instrument.cvv,
                "name": instrument.cardholder_name,
            },
        }
        resp = self._post_charge(payload, idempotency_key, time.monotonic() + self.timeout)

        if resp.status_code == 402:
            body = resp.json()
            return ChargeResult(success=False, failure_reason=body.get("reason", "Card declined"))
        resp.raise_for_status()

        body = resp.json()
        if body.get("status") == "succeeded":
            return ChargeResult(success=True, transaction_id=body["id"])
        return ChargeResult(success=False, failure_reason=body.get("reason", "Card declined"))
