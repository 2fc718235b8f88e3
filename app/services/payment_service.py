# app/services/payment_service.py
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from datetime import datetime, timezone
from functools import lru_cache

import requests

from app.domain.errors import ValidationError
from app.domain.payment import AuthorizationResult, PaymentInstrument
from app.services.payment_gateway import HttpPaymentGateway, PaymentGateway, SimulatedGateway
from app.utils.settings import PAYMENT_CURRENCY, PAYMENT_GATEWAY, PAYMENT_TIMEOUT_SECONDS
from app.utils.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_METHODS = ("credit_card", "debit_card")


def luhn_valid(number: str) -> bool:
    if not number.isdigit():
        return False
    checksum = 0
    for i, ch in enumerate(reversed(number)):
        digit = int(ch)
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        checksum += digit
    return checksum % 10 == 0


def validate_instrument(instrument: PaymentInstrument, now: datetime | None = None) -> None:
    """Reject a malformed instrument before anything is reserved or charged."""
    now = now or datetime.now(timezone.utc)
    problems = []

    if instrument.payment_method not in SUPPORTED_METHODS:
        problems.append(f"unsupported payment method {instrument.payment_method!r}")

    digits = instrument.digits
    if not digits.isdigit() or not 12 <= len(digits) <= 19:
        problems.append("card number must be 12-19 digits")
    elif not luhn_valid(digits):
        problems.append("card number failed checksum")

    year = instrument.expiry_year
    if year < 100:
        year += 2000
    if not 1 <= instrument.expiry_month <= 12:
        problems.append("expiry month must be 1-12")
    elif (year, instrument.expiry_month) < (now.year, now.month):
        # cards are valid through the last day of the expiry month
        problems.append("card has expired")

    if not (instrument.cvv.isdigit() and 3 <= len(instrument.cvv) <= 4):
        problems.append("CVV must be 3 or 4 digits")

    if not instrument.cardholder_name.strip():
        problems.append("cardholder name is required")

    if problems:
        raise ValidationError("Invalid payment details: " + "; ".join(problems))


class PaymentAuthorizer:
    """
    Authorizes a charge through a gateway with a hard time limit.

    Declines, timeouts and gateway transport errors all come back as a
    declined AuthorizationResult; only programming errors raise.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        timeout: float = PAYMENT_TIMEOUT_SECONDS,
        currency: str = PAYMENT_CURRENCY,
        max_workers: int = 16,
    ):
        self.gateway = gateway
        self.timeout = timeout
        self.currency = currency
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="payment")

    def authorize(
        self,
        amount_minor: int,
        instrument: PaymentInstrument,
        idempotency_key: str,
    ) -> AuthorizationResult:
        validate_instrument(instrument)
        if amount_minor <= 0:
            raise ValidationError("Charge amount must be positive")

        logger.info(
            f"Authorizing {amount_minor} {self.currency} on card {instrument.masked}",
            idempotency_key=idempotency_key,
        )
        future = self._executor.submit(
            self.gateway.charge, amount_minor, self.currency, instrument, idempotency_key
        )
        try:
            result = future.result(timeout=self.timeout)
        except FuturesTimeout:
            future.cancel()
            future.add_done_callback(_late_result_logger(idempotency_key))
            logger.warning(f"Payment authorization timed out after {self.timeout}s", idempotency_key=idempotency_key)
            return AuthorizationResult.decline("Payment authorization timed out")
        except requests.RequestException as e:
            logger.warning(f"Payment gateway error: {e}", idempotency_key=idempotency_key)
            return AuthorizationResult.decline("Payment gateway unavailable")

        if result.success:
            logger.info(f"Payment approved: {result.transaction_id}", idempotency_key=idempotency_key)
            return AuthorizationResult.approve(result.transaction_id)

        logger.warning(f"Payment declined: {result.failure_reason}", idempotency_key=idempotency_key)
        return AuthorizationResult.decline(result.failure_reason or "Card declined")


def _late_result_logger(idempotency_key: str):
    def _log(future):
        if future.cancelled() or future.exception() is not None:
            return
        result = future.result()
        if result.success:
            # charged after we gave up on it; needs a void at the processor
            logger.error(
                f"Payment {result.transaction_id} approved after timeout, void required",
                idempotency_key=idempotency_key,
            )

    return _log


def build_gateway(kind: str = PAYMENT_GATEWAY) -> PaymentGateway:
    if kind == "http":
        return HttpPaymentGateway()
    if kind == "simulated":
        return SimulatedGateway()
    raise ValueError(f"Unknown payment gateway {kind!r}")


@lru_cache(maxsize=1)
def get_payment_authorizer() -> PaymentAuthorizer:
    return PaymentAuthorizer(build_gateway())
