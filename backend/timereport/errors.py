"""Error taxonomy shared by the resolver, validator, workflow and pipeline.

Every error is an ``HTTPException`` so service functions can raise it the same
way they raise plain HTTP errors; ``main`` renders them as
``{"error", "code", "details"}`` bodies.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from fastapi import HTTPException, status


class ErrorCodes:
    """Machine-readable error codes."""

    UNAUTHENTICATED = "AUTH_UNAUTHENTICATED"
    FORBIDDEN = "AUTH_FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    TRANSIENT_ERROR = "TRANSIENT_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class TimeReportError(HTTPException):
    code: str = ErrorCodes.INTERNAL_ERROR
    status_code_default: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(status_code=self.status_code_default, detail=message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


class UnauthenticatedError(TimeReportError):
    code = ErrorCodes.UNAUTHENTICATED
    status_code_default = status.HTTP_401_UNAUTHORIZED


class NotFoundError(TimeReportError):
    """The target entity does not exist.

    The message is the same whether the entity is absent or merely invisible
    to the caller.
    """

    code = ErrorCodes.NOT_FOUND
    status_code_default = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: Any) -> None:
        super().__init__(
            f"{resource} '{identifier}' not found",
            {"resource": resource, "id": str(identifier)},
        )
        self.resource = resource
        self.identifier = identifier


class ForbiddenError(TimeReportError):
    """The resolver denied the action.

    Only the resource path and the capability that was required are exposed,
    never the caller's grants.
    """

    code = ErrorCodes.FORBIDDEN
    status_code_default = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        resource_path: str,
        required_capability: Optional[str],
        *,
        owner_required: bool = False,
        message: Optional[str] = None,
    ) -> None:
        details: Dict[str, Any] = {
            "resourcePath": resource_path,
            "requiredCapability": required_capability,
        }
        if owner_required:
            details["ownerRequired"] = True
        if message is None:
            if owner_required:
                message = f"Only the owner of the entry may perform this action on '{resource_path}'"
            else:
                message = f"Missing capability '{required_capability}' on '{resource_path}'"
        super().__init__(message, details)
        self.resource_path = resource_path
        self.required_capability = required_capability
        self.owner_required = owner_required


class ValidationError(TimeReportError):
    code = ErrorCodes.VALIDATION_ERROR
    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *fields: str) -> None:
        super().__init__(message, {"fields": list(fields)})
        self.fields = list(fields)

    @property
    def field(self) -> Optional[str]:
        return self.fields[0] if self.fields else None


class ConflictError(TimeReportError):
    """A workflow guard rejected the transition for the entry's current status."""

    code = ErrorCodes.BUSINESS_RULE_VIOLATION
    status_code_default = status.HTTP_409_CONFLICT

    def __init__(self, message: str, current_status: str, expected_status: Iterable[str]) -> None:
        expected = list(expected_status)
        super().__init__(message, {"currentStatus": current_status, "expectedStatus": expected})
        self.current_status = current_status
        self.expected_status = expected


class TransientError(TimeReportError):
    """Storage failure; the caller may retry."""

    code = ErrorCodes.TRANSIENT_ERROR
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
