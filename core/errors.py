"""
Exceptions raised by billing workflows. Routes map them to HTTP status codes.
"""
from __future__ import annotations


class BillingError(Exception):
    """Base class; `status_code` is what a route should answer with."""

    status_code = 400


class NotFound(BillingError, LookupError):
    status_code = 404


class PaymentNotFound(NotFound):
    pass


class WithdrawalNotFound(NotFound):
    pass


class InvalidTransition(BillingError):
    """The record is no longer pending (already approved or rejected)."""

    status_code = 409

    def __init__(self, kind: str, record_id: int, current: str, wanted: str):
        super().__init__(f"{kind} {record_id} is {current}; cannot mark it {wanted}")
        self.kind = kind
        self.record_id = record_id
        self.current = current
        self.wanted = wanted


class ValidationFailed(BillingError, ValueError):
    pass


__all__ = [
    "BillingError",
    "NotFound",
    "PaymentNotFound",
    "WithdrawalNotFound",
    "InvalidTransition",
    "ValidationFailed",
]
