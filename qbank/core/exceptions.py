"""Custom exception classes for the quality pipeline."""

from typing import Any


class QBankError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(QBankError):
    """Invalid or missing configuration."""

    pass


# Generation Errors
class GenerationError(QBankError):
    """Base class for generative service failures."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or f"Generation failed: {reason}", {"reason": reason})


class TransientGenerationError(GenerationError):
    """Timeout, rate limit, or server-side failure. Safe to retry."""

    pass


class FatalGenerationError(GenerationError):
    """Malformed request. Retrying would repeat the same failure."""

    pass


# Validation Errors
class ValidationError(QBankError):
    """Candidate response failed structural or content validation."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Candidate rejected: {reason}", {"reason": reason})


class ReferenceWarning(QBankError):
    """A single media reference failed verification."""

    def __init__(self, slot: str, reference: str, reason: str) -> None:
        self.slot = slot
        self.reference = reference
        self.reason = reason
        super().__init__(
            f"{slot} reference rejected: {reason}",
            {"slot": slot, "reference": reference, "reason": reason},
        )


# Store Errors
class StoreError(QBankError):
    """Content store could not be read or written."""

    pass


class StoreReadError(StoreError):
    """Candidate selection or counting failed."""

    pass


class StoreWriteError(StoreError):
    """Upsert of a single record failed."""

    def __init__(self, record_id: str, message: str) -> None:
        self.record_id = record_id
        super().__init__(f"Write failed for {record_id}: {message}", {"record_id": record_id})
