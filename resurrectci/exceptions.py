# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from typing import Optional, Any

class ResurrectCIException(Exception):
    """
    Base exception for all ResurrectCI errors.

    All custom exceptions should inherit from this.
    """
    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            details: Additional error details
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }

class DeploymentNotFoundError(ResurrectCIException):
    """Raised when a deployment is not known to the registry."""
    def __init__(self, deployment_id: str):
        super().__init__(
            message=f"Deployment not found: {deployment_id}",
            error_code="deployment_not_found",
            details={"deployment_id": deployment_id},
        )


class DeploymentErrorNotFoundError(ResurrectCIException):
    """Raised when a deployment error cannot be found."""
    def __init__(self, deployment_id: str, error_id: str):
        super().__init__(
            message=f"Error {error_id} not found on deployment {deployment_id}",
            error_code="deployment_error_not_found",
            details={"deployment_id": deployment_id, "error_id": error_id},
        )


class ActionNotFoundError(ResurrectCIException):
    """Raised when an automated action cannot be found in the ledger."""
    def __init__(self, action_id: str):
        super().__init__(
            message=f"Automated action not found: {action_id}",
            error_code="action_not_found",
            details={"action_id": action_id},
        )


class InvalidStateTransitionError(ResurrectCIException):
    """Raised when a status change would move a state machine backward or out of a terminal state."""
    def __init__(self, entity: str, entity_id: str, current_state: str, requested_state: str):
        super().__init__(
            message=(
                f"{entity} {entity_id} cannot move from '{current_state}' "
                f"to '{requested_state}'"
            ),
            error_code="invalid_state_transition",
            details={
                "entity": entity,
                "entity_id": entity_id,
                "current_state": current_state,
                "requested_state": requested_state,
            },
        )


class PatchBuildError(ResurrectCIException):
    """Raised when branch, file or pull request creation fails. Aborts the remediation attempt."""
    def __init__(self, deployment_id: str, stage: str, reason: str):
        super().__init__(
            message=f"Patch build failed for deployment {deployment_id} at {stage}: {reason}",
            error_code="patch_build_failed",
            details={
                "deployment_id": deployment_id,
                "stage": stage,
                "reason": reason,
            },
        )


class RemediationDepthExceededError(ResurrectCIException):
    """Raised when a redeploy chain has already been remediated too many times."""
    def __init__(self, deployment_id: str, depth: int, limit: int):
        super().__init__(
            message=(
                f"Deployment {deployment_id} is remediation #{depth}; "
                f"limit is {limit}, manual intervention required"
            ),
            error_code="remediation_depth_exceeded",
            details={
                "deployment_id": deployment_id,
                "depth": depth,
                "limit": limit,
            },
        )


class RateLimitExceededError(ResurrectCIException):
    """ Raised when rate limit is exceeded. """
    def __init__(
        self,
        resource: str,
        limit: int,
        window_seconds: int,
        retry_after: int,
    ):
        super().__init__(
            message=f"Rate limit exceeded for {resource}: {limit} requests per {window_seconds}s",
            error_code="rate_limit_exceeded",
            details={
                "resource": resource,
                "limit": limit,
                "window_seconds": window_seconds,
                "retry_after": retry_after,
            },
        )

class ExternalServiceError(ResurrectCIException):
    """Base exception for external service errors."""
    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(
            message=f"{service} error: {message}",
            error_code=f"{service.lower()}_error",
            details={
                "service": service,
                "status_code": status_code,
            },
        )

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_transient(self) -> bool:
        """Transport failures, 5xx and 429 answers are worth retrying."""
        return self.status_code is None or self.status_code >= 500 or self.status_code == 429

class GitHubAPIError(ExternalServiceError):
    """Raised when GitHub API request fails."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("GitHub", message, status_code)

class VercelAPIError(ExternalServiceError):
    """Raised when the Vercel deployment platform API request fails."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("Vercel", message, status_code)

class KestraAPIError(ExternalServiceError):
    """Raised when the Kestra workflow engine API request fails."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("Kestra", message, status_code)

class CodeRabbitError(ExternalServiceError):
    """Raised when a CodeRabbit review request fails."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("CodeRabbit", message, status_code)

class GeminiAPIError(ExternalServiceError):
    """Raised when Gemini API request fails."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("Gemini", message, status_code)

class ConfigurationError(ResurrectCIException):
    """Raised when configuration is invalid or missing."""
    def __init__(self, setting: str, reason: str):
        super().__init__(
            message=f"Configuration error for '{setting}': {reason}",
            error_code="configuration_error",
            details={
                "setting": setting,
                "reason": reason,
            },
        )

class MissingCredentialsError(ConfigurationError):
    """Raised when required credentials are missing."""
    def __init__(self, credential: str):
        super().__init__(
            credential,
            f"Required credential '{credential}' is not configured",
        )
