"""
Typed exceptions for the accounting and treasury core.

Every error carries an HTTP ``status_code`` and a machine readable ``code``
so route handlers never parse messages. Services raise these before any
write when validating input; anything raised inside a unit of work leaves
the session uncommitted.

    ObraLedgerError (500, INTERNAL_ERROR)
    +-- ValidationError (400)
    |   +-- DuplicateCodeError
    |   +-- DuplicateCheckNumberError
    |   +-- DuplicateEntryNumberError
    |   +-- InvalidParentError
    |   +-- InvalidAccountError
    |   +-- InvalidEntryLineError
    |   +-- UnbalancedEntryError
    |   +-- InvalidInstrumentError
    +-- ForbiddenError (403)
    +-- NotFoundError (404)
    +-- ConflictError (409)
        +-- CheckAlreadyClearedError
        +-- InvalidCheckTransitionError
"""
from decimal import Decimal
from typing import Any, Dict, Optional


class ObraLedgerError(Exception):
    """Base class for domain errors"""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, **data: Any):
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class ValidationError(ObraLedgerError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class ForbiddenError(ObraLedgerError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Operation not allowed"


class NotFoundError(ObraLedgerError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"

    def __init__(self, resource: str = "Resource", resource_id: Any = None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found", resource=resource, resource_id=resource_id)


class ConflictError(ObraLedgerError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource state conflict"


class DuplicateCodeError(ValidationError):
    code = "DUPLICATE_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account with code '{account_code}' already exists", account_code=account_code)


class DuplicateCheckNumberError(ValidationError):
    code = "DUPLICATE_CHECK_NUMBER"

    def __init__(self, check_number: str):
        self.check_number = check_number
        super().__init__(f"Check number '{check_number}' already exists", check_number=check_number)


class DuplicateEntryNumberError(ValidationError):
    code = "DUPLICATE_ENTRY_NUMBER"

    def __init__(self, entry_number: str):
        self.entry_number = entry_number
        super().__init__(f"Journal entry '{entry_number}' already exists", entry_number=entry_number)


class InvalidParentError(ValidationError):
    code = "INVALID_PARENT"

    def __init__(self, parent_id: Any):
        self.parent_id = parent_id
        super().__init__("Parent account not found", parent_id=parent_id)


class InvalidAccountError(ValidationError):
    code = "INVALID_ACCOUNT"
    default_message = "One or more accounts do not exist or are inactive"


class InvalidEntryLineError(ValidationError):
    code = "INVALID_ENTRY_LINE"
    default_message = "Each journal line needs exactly one positive debit or credit"


class UnbalancedEntryError(ValidationError):
    code = "UNBALANCED_ENTRY"

    def __init__(self, currency: str, debits: Decimal, credits: Decimal):
        self.currency = currency
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Entry is not balanced for {currency}. Debits: {debits}, Credits: {credits}",
            currency=currency, debits=debits, credits=credits
        )


class InvalidInstrumentError(ValidationError):
    code = "INVALID_INSTRUMENT"
    default_message = "Exactly one active cash box or bank account is required"


class CheckAlreadyClearedError(ConflictError):
    code = "CHECK_ALREADY_CLEARED"

    def __init__(self, check_id: Any):
        self.check_id = check_id
        super().__init__("Check is already cleared", check_id=check_id)


class InvalidCheckTransitionError(ConflictError):
    code = "INVALID_CHECK_TRANSITION"

    def __init__(self, current_status: str, target_status: str):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Cannot move check from {current_status} to {target_status}",
            current_status=current_status, target_status=target_status
        )
