"""
core/errors.py -- Domain exception taxonomy for TodoManager.

Services raise these; api/main.py registers one exception handler that turns
any TodoManagerError into the {success, message, data} envelope with the
class's status_code. Route handlers never build error responses by hand.

  ValidationError      400  malformed input, bad enum values, failed login
  ConflictError        400  uniqueness violations (400, not 409, by contract)
  AuthenticationError  401  missing / invalid / expired bearer token
  NotFoundError        404  absent OR owned by someone else -- same response
  StorageError         500  backing-store fault; message is always generic
  OwnerIntegrityError  500  authenticated principal without an identity row

`message` is what the client sees. Anything diagnostic belongs in the log
record written where the error is raised, not in the exception text.

Layer rule: no imports from api/, auth/, or todo/.
"""

from __future__ import annotations


class TodoManagerError(Exception):
    status_code: int = 500
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 400
# ---------------------------------------------------------------------------


class ValidationError(TodoManagerError):
    status_code = 400
    default_message = "The request is invalid."


class InvalidEnumValue(ValidationError):
    """A category or priority string that does not name a known member."""

    def __init__(self, field: str, value: str, allowed: list[str]) -> None:
        self.field = field
        self.value = value
        self.allowed = allowed
        super().__init__(f"Invalid {field} '{value}'. Allowed values: {', '.join(allowed)}.")


class InvalidCategory(InvalidEnumValue):
    def __init__(self, value: str, allowed: list[str]) -> None:
        super().__init__("category", value, allowed)


class PasswordMismatch(ValidationError):
    default_message = "Passwords do not match."


class RegistrationRejected(ValidationError):
    """The credential store refused the new identity (policy violations)."""

    def __init__(self, reasons: list[str]) -> None:
        self.reasons = reasons
        super().__init__(f"Registration failed: {'; '.join(reasons)}")


class InvalidCredentials(ValidationError):
    # One message for unknown user and wrong password alike.
    default_message = "Invalid username or password."


class ConflictError(TodoManagerError):
    status_code = 400
    default_message = "The resource already exists."


class UsernameTaken(ConflictError):
    default_message = "Username is already taken."


# ---------------------------------------------------------------------------
# 401 / 404
# ---------------------------------------------------------------------------


class AuthenticationError(TodoManagerError):
    status_code = 401
    default_message = "You are not logged in. Please login to continue."


class NotFoundError(TodoManagerError):
    status_code = 404
    default_message = "Resource not found."


# ---------------------------------------------------------------------------
# 500
# ---------------------------------------------------------------------------


class StorageError(TodoManagerError):
    status_code = 500
    default_message = "Something went wrong while accessing your data. Please try again."


class OwnerIntegrityError(TodoManagerError):
    status_code = 500
