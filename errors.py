"""
Fehlerhierarchie der API.

Jede Domänen-Exception trägt einen maschinenlesbaren Code, den HTTP-Status
und einen Schlüssel für den lokalisierten Nachrichtenkatalog (messages.py).
Die Exception-Handler in main.py wandeln sie in die einheitliche Form
{"error": {"message": ..., "code": ..., ...}} um.

Hierarchie:
    AppError
    ├── TaskValidationError          422
    ├── InvalidTaskHierarchyError    422
    ├── TaskNotFoundError            404
    ├── ParentTaskNotFoundError      404
    ├── TaskAccessDeniedError        403
    ├── ParentAccessDeniedError      403
    ├── UserAlreadyExistsError       409
    ├── InvalidCredentialsError      401
    ├── AccountDeactivatedError      403
    ├── AuthenticationError          401
    └── RateLimitedError             429
"""

from typing import Any, Dict, List, Optional


class AppError(Exception):
    code = "APP_ERROR"
    status_code = 400
    message_key = "general.error"

    def __init__(self, message: Optional[str] = None, message_key: Optional[str] = None, **context: Any):
        if message_key:
            self.message_key = message_key
        self.message = message or self.message_key
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    def extra(self) -> Dict[str, Any]:
        """Zusätzliche Felder für den Response-Body."""
        return {}

    def headers(self) -> Optional[Dict[str, str]]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
        }
        data.update(self.extra())
        return data

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.code}: {self.message})"


class TaskValidationError(AppError):
    """Feldbezogene Validierungsfehler, z.B. {"name.en": ["..."]}."""

    code = "VALIDATION_ERROR"
    status_code = 422
    message_key = "general.validation_failed"

    def __init__(self, errors: Dict[str, List[str]], **context: Any):
        self.errors = errors
        super().__init__("Validation failed: " + ", ".join(sorted(errors)), **context)

    def extra(self) -> Dict[str, Any]:
        return {"errors": self.errors}


class InvalidTaskHierarchyError(AppError):
    code = "INVALID_HIERARCHY"
    status_code = 422
    message_key = "task.invalid_hierarchy"


class TaskNotFoundError(AppError):
    code = "TASK_NOT_FOUND"
    status_code = 404
    message_key = "task.not_found"


class ParentTaskNotFoundError(AppError):
    code = "PARENT_TASK_NOT_FOUND"
    status_code = 404
    message_key = "task.parent_not_found"


class TaskAccessDeniedError(AppError):
    code = "UNAUTHORIZED_TASK_ACCESS"
    status_code = 403
    message_key = "task.unauthorized"


class ParentAccessDeniedError(AppError):
    code = "UNAUTHORIZED_PARENT_TASK_ACCESS"
    status_code = 403
    message_key = "task.parent_unauthorized"


class UserAlreadyExistsError(AppError):
    code = "USER_ALREADY_EXISTS"
    status_code = 409
    message_key = "auth.email_taken"


class InvalidCredentialsError(AppError):
    # Gleiche Antwort für unbekannte E-Mail und falsches Passwort
    code = "INVALID_CREDENTIALS"
    status_code = 401
    message_key = "auth.failed"


class AccountDeactivatedError(AppError):
    code = "ACCOUNT_DEACTIVATED"
    status_code = 403
    message_key = "auth.deactivated"


class AuthenticationError(AppError):
    code = "UNAUTHENTICATED"
    status_code = 401
    message_key = "auth.unauthenticated"

    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class RateLimitedError(AppError):
    code = "TOO_MANY_ATTEMPTS"
    status_code = 429
    message_key = "auth.throttle"

    def __init__(self, retry_after: int, **context: Any):
        self.retry_after = max(int(retry_after), 1)
        super().__init__(f"Too many attempts, retry in {self.retry_after}s", **context)

    def extra(self) -> Dict[str, Any]:
        return {"retry_after": self.retry_after}

    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(self.retry_after)}
