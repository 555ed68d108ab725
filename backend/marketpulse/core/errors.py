class MarketPulseError(Exception):
    """Base class for errors raised by the ingestion and trend pipeline."""


class SourceError(MarketPulseError):
    """A raw listing feed could not be read or a record could not be parsed."""


class AIProviderError(MarketPulseError):
    """The AI service returned an error that is neither transient nor quota related."""


class TransientAIError(AIProviderError):
    """Overload, timeout or transport failure; the call may be retried."""


class QuotaExhaustedError(AIProviderError):
    """The provider refused the call for quota reasons; stop calling it for this run."""
