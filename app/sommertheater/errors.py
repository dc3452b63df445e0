from __future__ import annotations

from typing import Any


class ServiceError(RuntimeError):
    """
    Business-rule failure raised by module services.
    Carries the HTTP status and the user-facing (German) message; API blueprints
    turn it into `{"error": message}` via the handler registered in create_app().
    """

    status_code = 400

    def __init__(self, message: str, *, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class ForbiddenError(ServiceError):
    status_code = 403


class ConflictError(ServiceError):
    status_code = 409
