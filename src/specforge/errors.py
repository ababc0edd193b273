"""Exception hierarchy for SpecForge.

All domain errors derive from SpecForgeError. Structural and state errors
(IllegalTransitionError, PhaseAlreadyWrittenError, NotReadyError) indicate
caller misuse and are never retried. ProviderUnavailableError and
MalformedOutputError are raised by the AI client after its own retries
are exhausted. ValidationBelowThresholdError carries the final quality
score and findings of a failed generation attempt.
"""

from __future__ import annotations

from typing import Any


class SpecForgeError(Exception):
    """Base class for all SpecForge errors.

    Attributes:
        error_code: Stable machine-readable code used in API error bodies.
    """

    error_code = "SPECFORGE_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API error responses."""
        return {"error_code": self.error_code, "message": str(self)}


class IllegalTransitionError(SpecForgeError):
    """Raised when a status change is not in the transition table.

    Attributes:
        current: The current status value.
        target: The attempted target status value.
        entity_id: ID of the entity that failed to transition.
    """

    error_code = "ILLEGAL_TRANSITION"

    def __init__(self, current: str, target: str, entity_id: str | None = None):
        self.current = current
        self.target = target
        self.entity_id = entity_id
        msg = f"Invalid transition from {current} to {target}"
        if entity_id:
            msg += f" for {entity_id}"
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"current": self.current, "target": self.target})
        return data


class PhaseAlreadyWrittenError(SpecForgeError):
    """Raised when a research phase payload would be overwritten."""

    error_code = "PHASE_ALREADY_WRITTEN"

    def __init__(self, phase: int, artifact_id: str | None = None):
        self.phase = phase
        self.artifact_id = artifact_id
        super().__init__(f"Research phase {phase} has already been written")


class NotReadyError(SpecForgeError):
    """Raised when an operation targets an entity not in the required state."""

    error_code = "NOT_READY"


class DocumentLockedError(NotReadyError):
    """Raised when regenerating a document that has already been downloaded."""

    error_code = "DOCUMENT_LOCKED"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(
            f"Generated document for project {project_id} is locked by a download"
        )


class ProjectNotFoundError(SpecForgeError):
    """Raised when a project ID does not resolve to a row."""

    error_code = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project {project_id} not found")


class NotOwnerError(SpecForgeError):
    """Raised when an owner-only action is requested by another user."""

    error_code = "NOT_OWNER"

    def __init__(self, project_id: str, user_id: str):
        self.project_id = project_id
        self.user_id = user_id
        super().__init__(f"User {user_id} does not own project {project_id}")


class BudgetExceededError(SpecForgeError):
    """Raised when a research or generation request runs past its time budget.

    Already-persisted phase payloads stay valid.
    """

    error_code = "BUDGET_EXCEEDED"

    def __init__(self, operation: str, budget_seconds: int):
        self.operation = operation
        self.budget_seconds = budget_seconds
        super().__init__(f"{operation} exceeded its budget of {budget_seconds}s")


class ProviderUnavailableError(SpecForgeError):
    """Transient AI provider or network failure.

    Attributes:
        attempts: Number of attempts made before giving up.
        status_code: HTTP status returned by the provider, if any.
        retry_after: Provider-requested wait in seconds (Retry-After header).
    """

    error_code = "PROVIDER_UNAVAILABLE"

    def __init__(
        self,
        message: str,
        attempts: int = 1,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        self.attempts = attempts
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)


class MalformedOutputError(SpecForgeError):
    """AI output failed structural parsing or schema validation.

    Attributes:
        raw_output: The text that failed to parse (truncated for logs).
    """

    error_code = "MALFORMED_OUTPUT"

    def __init__(self, message: str, raw_output: str = ""):
        self.raw_output = raw_output
        super().__init__(message)


class ValidationBelowThresholdError(SpecForgeError):
    """Generated document scored below the quality threshold after auto-fix.

    Attributes:
        score: Final quality score (after the auto-fix pass).
        findings: Validation findings as plain dicts.
        suggestions: Deduplicated corrective suggestions.
    """

    error_code = "VALIDATION_BELOW_THRESHOLD"

    def __init__(
        self,
        score: int,
        findings: list[dict[str, Any]],
        suggestions: list[str],
    ):
        self.score = score
        self.findings = findings
        self.suggestions = suggestions
        super().__init__(f"Document quality score {score} is below threshold")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "score": self.score,
                "findings": self.findings,
                "suggestions": self.suggestions,
            }
        )
        return data


class ProviderRequestError(SpecForgeError):
    """Non-retryable AI provider rejection (bad request, auth, unknown model).

    Attributes:
        status_code: HTTP status returned by the provider.
    """

    error_code = "PROVIDER_REQUEST_REJECTED"

    def __init__(self, message: str, status_code: int):
        self.status_code = status_code
        super().__init__(message)
