"""
Exception hierarchy for the lot review package.

Validation problems are reported through ``ValidationResult`` and never raised;
everything here is raised to the caller, who decides whether to reject an
upload or abort a delivery.
"""


class LotReviewError(Exception):
    """Base class for all lot review errors."""


class DecodeError(LotReviewError):
    """The map text could not be walked as structured markup."""


class EncodeError(LotReviewError):
    """The document lacks usable grid sizing (Rows / Columns) for generation."""


class DeliveryError(LotReviewError):
    """A delivery attempt was refused or the transfer failed."""


class LotNotFoundError(LotReviewError, LookupError):
    """No persisted lot exists for the requested id."""
