"""Business-rule failures raised by the auth services.

Every failure carries a stable ``code`` and the HTTP status the routers
answer with. These are terminal for the request; storage errors are not
part of this hierarchy and propagate as SQLAlchemy exceptions.
"""


class AuthError(ValueError):
    code = "AUTH_ERROR"
    status_code = 400
    default_message = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NotFound(AuthError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Invalid or expired magic link"


class Expired(AuthError):
    code = "EXPIRED"
    status_code = 400
    default_message = "Magic link has expired, request a new one"


class AlreadyUsed(AuthError):
    code = "ALREADY_USED"
    status_code = 409
    default_message = "Magic link has already been used"


class AccountDeactivated(AuthError):
    code = "ACCOUNT_DEACTIVATED"
    status_code = 403
    default_message = "Your account has been deactivated"


class InvalidCredential(AuthError):
    code = "INVALID_CREDENTIAL"
    status_code = 401
    default_message = "Invalid refresh token"


class SessionNotFound(AuthError):
    code = "SESSION_NOT_FOUND"
    status_code = 401
    default_message = "Session not found"


class SessionExpired(AuthError):
    code = "SESSION_EXPIRED"
    status_code = 401
    default_message = "Session expired"


class Unauthorized(AuthError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "You must be logged in to access this resource"


class Forbidden(AuthError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "You do not have permission to access this resource"


class SelfActionDenied(AuthError):
    code = "SELF_ACTION_DENIED"
    status_code = 400
    default_message = "You cannot perform this action on your own account"


class UserNotFound(AuthError):
    code = "USER_NOT_FOUND"
    status_code = 404
    default_message = "User not found"
