"""
core/errors.py -- Domain error taxonomy for Lorekeeper.

Every failure the auth and world services can produce is a subclass of
LorekeeperError carrying a stable machine-readable `code` and a human
`message`. Services raise these and never swallow them; api/main.py owns the
single translation from code to HTTP status.

Keeping this module free of FastAPI imports lets services and stores raise
meaningful errors without knowing they are running behind HTTP.

Layer rule: core/ is the kernel. No imports from api/, auth/, worlds/, notify/.
"""

from __future__ import annotations

from typing import Optional


class LorekeeperError(Exception):
    """Base class for all expected, client-visible failures."""

    code: str = "error"
    default_message: str = "Request failed."

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Registration / login
# ---------------------------------------------------------------------------


class DuplicateEmailError(LorekeeperError):
    code = "duplicate_email"
    default_message = "Email already in use."


class DuplicateUsernameError(LorekeeperError):
    code = "duplicate_username"
    default_message = "Username already in use."


class InvalidCredentialsError(LorekeeperError):
    """Unknown email and wrong password share this one message on purpose."""

    code = "invalid_credentials"
    default_message = "Invalid email or password."


class EmailNotVerifiedError(LorekeeperError):
    code = "email_not_verified"
    default_message = "Please verify your email before logging in."


class UserNotFoundError(LorekeeperError):
    code = "user_not_found"
    default_message = "User not found."


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


class InvalidVerificationTokenError(LorekeeperError):
    code = "invalid_token"
    default_message = "Invalid verification token."


class VerificationTokenExpiredError(LorekeeperError):
    code = "token_expired"
    default_message = "Verification token expired."


class AlreadyVerifiedError(LorekeeperError):
    code = "already_verified"
    default_message = "Email already verified."


# ---------------------------------------------------------------------------
# Sessions and credentials
# ---------------------------------------------------------------------------


class InvalidSessionTokenError(LorekeeperError):
    """Raised by the token signer for bad signatures, malformed or expired tokens."""

    code = "invalid_session"
    default_message = "Session is invalid or has expired."


class PasswordHashingError(LorekeeperError):
    """The hashing backend rejected its input. Never used for a wrong password."""

    code = "hashing_error"
    default_message = "Password could not be processed."


class EmailDeliveryError(LorekeeperError):
    code = "email_delivery_failed"
    default_message = "Verification email could not be sent."


# ---------------------------------------------------------------------------
# Resource access
# ---------------------------------------------------------------------------


class AccessDeniedError(LorekeeperError):
    code = "access_denied"
    default_message = "Access denied."

    def __init__(self, kind: str, resource_id: Optional[int]) -> None:
        self.kind = kind
        self.resource_id = resource_id
        super().__init__(f"Access denied to {kind} with id {resource_id}.")


class ResourceNotFoundError(LorekeeperError):
    code = "not_found"
    default_message = "Resource not found."

    def __init__(self, kind: str, resource_id: Optional[int]) -> None:
        self.kind = kind
        self.resource_id = resource_id
        super().__init__(f"{kind.capitalize()} with id {resource_id} not found.")


class ProjectHasEntitiesError(LorekeeperError):
    code = "project_has_entities"
    default_message = "Project still contains entities."

    def __init__(self, project_id: int, entity_count: int) -> None:
        self.project_id = project_id
        self.entity_count = entity_count
        super().__init__(
            f"Cannot delete project with id {project_id}: it contains {entity_count} entities. "
            "Delete all entities first."
        )
