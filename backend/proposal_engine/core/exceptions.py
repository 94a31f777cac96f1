"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. Consistent error handling across the API
2. HTTP status code mapping for FastAPI
3. Structured error responses with contextual data
4. No sensitive data leaks in error messages
5. Enough detail for callers to pick a remediation
   (e.g. "already signed" vs. a generic failure)

Every error in the proposal core is recoverable: a failed operation leaves
the proposal in its prior valid state.

IMPORTANT: NEVER use base Exception class. Always use custom exceptions.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        # WHY: Filter out sensitive fields to prevent data leaks
        sensitive_fields = {"password", "token", "secret", "key", "api_key", "signature_image"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Authentication Exceptions
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when authentication fails.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Authentication failed"


class TokenExpiredError(AuthenticationError):
    """Raised when a JWT token has expired."""

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """Raised when a JWT token is malformed or has an invalid signature."""

    default_message = "Token is invalid"


# ============================================================================
# Validation & Input Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


class InvalidPrefixError(ValidationError):
    """
    Raised when a SOW prefix candidate is not 1-10 ASCII digits.

    WHY: Local and user-correctable, so the owner sees the exact rule.

    HTTP Status: 400 Bad Request
    """

    default_message = "SOW prefix must be 1-10 digits"


class TermsNotAcceptedError(ValidationError):
    """Raised when a signer has not accepted the terms."""

    default_message = "Terms must be accepted to sign"


class SignatureImageError(ValidationError):
    """Raised when a signature image payload is missing, malformed or too large."""

    default_message = "Invalid signature image"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class ProposalNotFoundError(ResourceNotFoundError):
    """Raised when a proposal doesn't exist (or belongs to another account)."""

    default_message = "Proposal not found"


class ResourceAlreadyExistsError(AppException):
    """
    Raised when attempting to create a resource that already exists.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Resource already exists"


class AlreadySignedError(ResourceAlreadyExistsError):
    """
    Raised on a duplicate sign attempt.

    WHY: At most one signature may exist per proposal. The original
    signature is always retained.
    """

    default_message = "Proposal has already been signed"


# ============================================================================
# Business Logic Exceptions
# ============================================================================


class BusinessRuleViolation(AppException):
    """
    Raised when a business rule is violated.

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    default_message = "Business rule violation"


class InvalidStateTransitionError(BusinessRuleViolation):
    """
    Raised when an invalid state transition is attempted.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Invalid state transition"


class InvalidTransitionError(InvalidStateTransitionError):
    """
    Raised when a proposal status change is not allowed from its current state.

    WHY: Carries the source status and the trigger so the owner UI can
    explain why the change was rejected.
    """

    default_message = "Proposal status change is not allowed"


class EditNotAllowedError(BusinessRuleViolation):
    """
    Raised when content is edited while the proposal is accepted, declined or expired.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Proposal can no longer be edited"


class PrefixLockedError(BusinessRuleViolation):
    """
    Raised when changing a SOW prefix that has already been used.

    WHY: Once a number has been issued with a prefix, changing the prefix
    would rewrite every issued document number. The latch is one-way.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "SOW prefix is locked and cannot be changed"


class SignatureNotAllowedError(BusinessRuleViolation):
    """Raised when a proposal does not accept signatures in its current state."""

    default_message = "This proposal cannot be signed"


class SowNumberAllocationError(AppException):
    """
    Raised when a unique SOW number could not be allocated after retries.

    HTTP Status: 503 Service Unavailable
    """

    status_code = 503
    default_message = "Could not allocate a document number, please retry"


class PublicRequestError(AppException):
    """
    Generic failure reported on the recipient-facing surface.

    WHY: Recipients should never learn whether a failure was internal or
    a validation problem beyond a generic message.
    """

    status_code = 400
    default_message = "We could not process this request"


# ============================================================================
# External Service Exceptions
# ============================================================================


class ExternalServiceError(AppException):
    """
    Base exception for external service failures.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class S3Error(ExternalServiceError):
    """Raised when S3/object storage operations fail."""

    default_message = "File storage error"


class SlackNotificationError(ExternalServiceError):
    """
    Raised when Slack webhook calls fail.

    WHY: Slack notification failures should be logged and not block
    the main operation. Notifications are best-effort delivery.
    """

    default_message = "Slack notification error"

