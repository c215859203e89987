"""Error taxonomy shared by all engine components.

Only unrecoverable conditions are raised. Anything that can be answered with a
smaller or placeholder result is returned as a value instead (see
`crossdoc.types.DegradedReason`).
"""

from __future__ import annotations


class CrossDocError(Exception):
    """Base class for engine errors."""


class RateLimited(CrossDocError):
    """Signal a collaborator raises when the remote side throttled the call."""

    def __init__(self, message: str = "rate limited", *, retry_after_s: float | None = None) -> None:
        super().__init__(message)
        self.retry_after_s = retry_after_s


class SourceUnavailable(CrossDocError):
    """One source failed during fan-out. Recovered locally by the caller."""

    def __init__(self, source_id: str, cause: BaseException) -> None:
        super().__init__(f"Source {source_id} unavailable: {cause}")
        self.source_id = source_id
        self.cause = cause


class RateLimitExceeded(CrossDocError):
    """Retries against one provider were exhausted while rate limited."""

    def __init__(self, provider: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"Rate limit exceeded for {provider} after {attempts} attempt(s): {last_error}"
        )
        self.provider = provider
        self.attempts = attempts
        self.last_error = last_error


class DeadlineExceeded(CrossDocError):
    """The caller's deadline passed before the call could complete."""


class ProvidersUnavailable(CrossDocError):
    """No language-model provider passed its liveness check."""


class AllProvidersFailed(CrossDocError):
    """The selected provider and its fallback both failed."""

    def __init__(self, errors: dict[str, BaseException]) -> None:
        detail = "; ".join(f"{name}: {error}" for name, error in errors.items())
        super().__init__(f"All providers failed. {detail}")
        self.errors = errors


class DocumentNotFound(CrossDocError):
    """A document id could not be resolved by lookup nor by owner scan."""

    def __init__(self, missing_ids: list[str], owner_id: str) -> None:
        super().__init__(
            f"Document(s) not found for owner {owner_id}: {', '.join(missing_ids)}"
        )
        self.missing_ids = missing_ids
        self.owner_id = owner_id
