"""
Error taxonomy for pricing, persistence and payments.

Pricing errors come from pure code (drafts, rate tables, snapshots).
PersistenceError and PaymentProviderError come from the I/O layer and
always carry a message that is safe to show to the client.
"""

from typing import Optional


class PricingError(Exception):
    """Base class for errors raised while building a quote."""


class InvalidDraftError(PricingError):
    """A required booking draft field is missing or malformed."""


class ConfigurationError(InvalidDraftError):
    """An enum value (service type, artist, region, add-on) has no pricing."""


class OutOfRangeError(PricingError):
    """A party count is negative."""


class PaymentStateError(PricingError):
    """A payment event cannot be applied to the pricing snapshot."""


class PersistenceError(Exception):
    """The booking API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class DuplicateSubmissionError(PersistenceError):
    """A save for the same booking is already in flight."""


class PaymentProviderError(Exception):
    """A payment provider step failed; the message is shown verbatim."""

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.message = message
        self.provider = provider
