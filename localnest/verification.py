"""
Provider verification workflow.

A provider's verification status is the combination of three fields:

    verified   verification_requested   verification_rejected_reason
    --------   ----------------------   ----------------------------
    True       any                      None          -> "verified"
    False      True                     any           -> "pending"
    False      False                    set           -> "rejected"
    False      False                    None          -> "unverified"

The functions below only mutate the row; the caller owns the session and
commits.
"""
from datetime import datetime

from .models import Provider, utcnow

MIN_REJECTION_REASON_LENGTH = 10


class VerificationError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def verification_state(provider: Provider) -> str:
    if provider.verified:
        return "verified"
    if provider.verification_requested:
        return "pending"
    if provider.verification_rejected_reason:
        return "rejected"
    return "unverified"


def request_verification(provider: Provider, now: datetime | None = None) -> Provider:
    if provider.verified:
        raise VerificationError("Provider is already verified")

    provider.verification_requested = True
    provider.verification_requested_at = now or utcnow()
    provider.verification_rejected_reason = None
    return provider


def verify(provider: Provider, admin_user_id: int, now: datetime | None = None) -> Provider:
    if provider.verified:
        raise VerificationError("Provider is already verified")
    if not provider.verification_requested:
        raise VerificationError("Provider has not requested verification")

    provider.verified = True
    provider.verified_at = now or utcnow()
    provider.verified_by = admin_user_id
    provider.verification_rejected_reason = None
    return provider


def validate_rejection_reason(reason: str | None) -> str:
    if not reason or len(reason.strip()) < MIN_REJECTION_REASON_LENGTH:
        raise VerificationError(
            f"Rejection reason must be at least {MIN_REJECTION_REASON_LENGTH} characters long"
        )
    return reason


def reject(provider: Provider, reason: str | None) -> Provider:
    validate_rejection_reason(reason)
    if provider.verified:
        raise VerificationError("Cannot reject a verified provider")

    provider.verification_requested = False
    provider.verification_rejected_reason = reason
    provider.verified = False
    provider.verified_at = None
    provider.verified_by = None
    return provider
