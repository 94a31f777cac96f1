"""
Tests for custom exception hierarchy.

WHY: Comprehensive exception testing ensures:
1. Exceptions serialize correctly without leaking sensitive data
2. HTTP status codes map correctly
3. Context data is properly filtered
4. Exception handlers work as expected, including the generic
   recipient-facing validation response
"""

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel

from proposal_engine.core.config import settings
from proposal_engine.core.exceptions import (
    AppException,
    AlreadySignedError,
    AuthenticationError,
    BusinessRuleViolation,
    EditNotAllowedError,
    InvalidPrefixError,
    InvalidTransitionError,
    PrefixLockedError,
    ProposalNotFoundError,
    PublicRequestError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    S3Error,
    SignatureImageError,
    SignatureNotAllowedError,
    SlackNotificationError,
    SowNumberAllocationError,
    TermsNotAcceptedError,
    ValidationError,
)
from proposal_engine.core.exception_handlers import (
    app_exception_handler,
    validation_exception_handler,
)


class TestAppException:
    """Test base AppException class."""

    def test_default_message(self):
        """Verify default message is used when none provided."""
        exc = AppException()
        assert exc.message == "An unexpected error occurred"
        assert exc.status_code == 500

    def test_custom_status_code(self):
        """Verify custom status code overrides class default."""
        exc = AppException(status_code=418)
        assert exc.status_code == 418

    def test_to_dict_basic(self):
        exc = AppException(message="Test error", proposal_id=123)
        result = exc.to_dict()

        assert result["error"] == "AppException"
        assert result["message"] == "Test error"
        assert result["status_code"] == 500
        assert result["details"] == {"proposal_id": 123}

    def test_to_dict_filters_sensitive_data(self):
        """Verify sensitive fields are filtered from dict."""
        exc = AppException(
            message="Test error",
            proposal_id=123,
            token="abc123",
            secret="mysecret",
            signature_image="data:image/png;base64,AAAA",
        )
        result = exc.to_dict()

        assert "token" not in result["details"]
        assert "secret" not in result["details"]
        assert "signature_image" not in result["details"]
        assert result["details"]["proposal_id"] == 123

    def test_to_dict_no_context(self):
        assert AppException(message="Test error").to_dict()["details"] is None


class TestProposalExceptions:
    """Status codes of the proposal error taxonomy."""

    @pytest.mark.parametrize(
        "exc_class,status_code",
        [
            (InvalidPrefixError, 400),
            (TermsNotAcceptedError, 400),
            (SignatureImageError, 400),
            (ProposalNotFoundError, 404),
            (AlreadySignedError, 409),
            (InvalidTransitionError, 409),
            (EditNotAllowedError, 409),
            (PrefixLockedError, 409),
            (SignatureNotAllowedError, 422),
            (SowNumberAllocationError, 503),
            (PublicRequestError, 400),
            (S3Error, 502),
            (SlackNotificationError, 502),
        ],
    )
    def test_status_codes(self, exc_class, status_code):
        assert exc_class().status_code == status_code

    def test_hierarchy(self):
        """
        Test that specific errors stay catchable by their family.

        WHY: The public surface maps by status code, the owner surface by
        class; both rely on these parents.
        """
        assert issubclass(InvalidPrefixError, ValidationError)
        assert issubclass(ProposalNotFoundError, ResourceNotFoundError)
        assert issubclass(AlreadySignedError, ResourceAlreadyExistsError)
        assert issubclass(EditNotAllowedError, BusinessRuleViolation)
        assert issubclass(PrefixLockedError, BusinessRuleViolation)

    def test_invalid_transition_carries_context(self):
        exc = InvalidTransitionError(current_status="accepted", trigger="send")
        details = exc.to_dict()["details"]

        assert details == {"current_status": "accepted", "trigger": "send"}

    def test_public_request_error_is_generic(self):
        result = PublicRequestError(status_code=409).to_dict()

        assert result["status_code"] == 409
        assert result["message"] == "We could not process this request"
        assert result["details"] is None


class TestExceptionHandlerIntegration:
    """Test exception handler integration with FastAPI."""

    class Payload(BaseModel):
        name: str

    @pytest.fixture
    def app(self):
        """Create test FastAPI app with exception handlers."""
        app = FastAPI()
        app.add_exception_handler(AppException, app_exception_handler)
        app.add_exception_handler(RequestValidationError, validation_exception_handler)
        payload_model = self.Payload

        @app.get("/auth-error")
        async def auth_error():
            raise AuthenticationError(message="Invalid credentials", user_id=123)

        @app.get("/locked")
        async def locked():
            raise PrefixLockedError(account_id=1, current_prefix="031")

        @app.post("/owner-body")
        async def owner_body(data: payload_model):
            return {"ok": True}

        @app.post(f"{settings.API_PREFIX}/public/proposals/abc/sign")
        async def public_body(data: payload_model):
            return {"ok": True}

        return app

    @pytest.fixture
    def client(self, app):
        return TestClient(app)

    def test_exception_handler_returns_json(self, client):
        response = client.get("/auth-error")

        assert response.status_code == 401
        assert response.headers["content-type"] == "application/json"
        data = response.json()
        assert data["error"] == "AuthenticationError"
        assert data["details"]["user_id"] == 123

    def test_specific_error_reaches_owner(self, client):
        response = client.get("/locked")

        assert response.status_code == 409
        assert response.json()["error"] == "PrefixLockedError"

    def test_owner_validation_errors_list_fields(self, client):
        response = client.post("/owner-body", json={})

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "ValidationError"
        assert data["details"]["errors"][0]["field"] == "body.name"

    def test_public_validation_errors_are_generic(self, client):
        """
        Test that recipients get no field details.

        WHY: The recipient surface never reveals what was wrong with a request.
        """
        response = client.post(f"{settings.API_PREFIX}/public/proposals/abc/sign", json={})

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "PublicRequestError"
        assert data["details"] is None
