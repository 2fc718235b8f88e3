# app/domain/payment.py
from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentInstrument:
    payment_method: str
    card_number: str
    expiry_month: int
    expiry_year: int
    cvv: str
    cardholder_name: str

    @property
    def digits(self) -> str:
        return "".join(ch for ch in self.card_number if ch not in " -")

    @property
    def last4(self) -> str:
        return self.digits[-4:]

    @property
    def masked(self) -> str:
        return f"**** {self.last4}"

    def __repr__(self) -> str:
        # keeps the PAN and CVV out of logs and tracebacks
        return f"PaymentInstrument(method={self.payment_method!r}, card={self.masked!r})"


@dataclass(frozen=True)
class AuthorizationResult:
    approved: bool
    reference: str | None = None
    reason: str | None = None

    @classmethod
    def approve(cls, reference: str) -> "AuthorizationResult":
        return cls(approved=True, reference=reference)

    @classmethod
    def decline(cls, reason: str) -> "AuthorizationResult":
        return cls(approved=False, reason=reason)
