"""Typed ledger errors.

Each error is an ``HTTPException`` so services can raise it directly and
FastAPI renders ``{"detail": {...}}`` without extra handlers. The ``error``
key in the detail is the stable machine-readable kind.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException


class LedgerError(HTTPException):
    status_code = 400
    error = "ledger_error"
    retryable = False

    def __init__(self, message: str, **extra: Any) -> None:
        self.message = message
        detail: Dict[str, Any] = {"error": self.error, "message": message}
        detail.update({key: value for key, value in extra.items() if value is not None})
        super().__init__(status_code=self.status_code, detail=detail)


class ValidationError(LedgerError):
    status_code = 400
    error = "validation_error"


class InvalidCreditType(ValidationError):
    error = "invalid_credit_type"

    def __init__(self, credit_type: Any) -> None:
        super().__init__("Invalid credit type. Must be 'enrichment' or 'icp'.", type=str(credit_type))


class InvalidAmount(ValidationError):
    error = "invalid_amount"

    def __init__(self, amount: Any) -> None:
        super().__init__("Invalid amount. Must be a positive integer.", amount=str(amount))


class InvalidPlan(ValidationError):
    error = "invalid_plan"

    def __init__(self, plan_id: Any) -> None:
        super().__init__("Invalid plan ID.", plan_id=str(plan_id))


class InvalidReference(ValidationError):
    error = "invalid_reference"

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(f"Unknown {field} for this organization.", field=field, value=str(value))


class NotFoundError(LedgerError):
    status_code = 404
    error = "not_found"


class MemberNotFound(NotFoundError):
    error = "member_not_found"

    def __init__(self, org_id: str, user_id: str) -> None:
        self.org_id = org_id
        self.user_id = user_id
        super().__init__("Member not found", org_id=org_id, user_id=user_id)


class Forbidden(LedgerError):
    status_code = 403
    error = "forbidden"


class MemberBlocked(Forbidden):
    error = "member_blocked"

    def __init__(self, user_id: str) -> None:
        super().__init__("Credit usage blocked by admin", reason="blocked by admin", user_id=user_id)


class QuotaExceeded(LedgerError):
    status_code = 402
    error = "quota_exceeded"
    scope = "organization"

    def __init__(self, message: str, *, remaining: int, required: int, credit_type: str) -> None:
        self.remaining = remaining
        self.required = required
        self.credit_type = credit_type
        super().__init__(
            message,
            reason=message,
            scope=self.scope,
            remaining=remaining,
            required=required,
            type=credit_type,
        )


class MemberLimitExceeded(QuotaExceeded):
    error = "member_limit_exceeded"
    scope = "member"

    def __init__(self, *, remaining: int, required: int, credit_type: str) -> None:
        super().__init__("member limit exceeded", remaining=remaining, required=required, credit_type=credit_type)


class OrganizationLimitExceeded(QuotaExceeded):
    error = "organization_limit_exceeded"
    scope = "organization"

    def __init__(self, *, remaining: int, required: int, credit_type: str) -> None:
        super().__init__(
            "insufficient organization credits",
            remaining=remaining,
            required=required,
            credit_type=credit_type,
        )


class PersistenceFailure(LedgerError):
    status_code = 503
    error = "persistence_failure"
    retryable = True

    def __init__(self, message: str = "Credit store unavailable. Retry the request.", cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(message, retryable=True)
