"""Custom exceptions for SocialPulse."""


class SocialPulseError(Exception):
    """Base exception for all SocialPulse errors."""

    def __init__(self, message: str, *args: object) -> None:
        self.message = message
        super().__init__(message, *args)


# Ingestion errors
class IngestionError(SocialPulseError):
    """Base error for ingestion layer."""


class TransportError(IngestionError):
    """Upstream fetch failed for a reason other than access denial."""


class UpstreamBlockedError(IngestionError):
    """One transport was denied (or timed out) by the upstream feed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamExhaustedError(IngestionError):
    """Every configured transport was denied by the upstream feed."""


# Processing errors
class ProcessingError(SocialPulseError):
    """Base error for processing layer."""


class LLMError(ProcessingError):
    """Generative backend call failed."""


class BackendParseError(ProcessingError):
    """Backend response held no usable JSON object of the expected shape."""


class SynthesisError(ProcessingError):
    """Sentiment synthesis failed on every attempt."""


class TickerNotFoundError(ProcessingError):
    """Symbol is not known to the ticker directory."""


class InsufficientCreditsError(ProcessingError):
    """User balance does not cover the requested analysis."""

    def __init__(self, message: str, balance: float, cost: float) -> None:
        super().__init__(message)
        self.balance = balance
        self.cost = cost


# Storage errors
class StorageError(SocialPulseError):
    """Base error for storage layer."""


class DatabaseConnectionError(StorageError):
    """Failed to connect to database."""


class DuplicateRecordError(StorageError):
    """Insert collided with an existing unique key."""
