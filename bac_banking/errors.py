"""
Error Taxonomy Module

Typed errors raised by the account hierarchy and the managers. Each error
carries an ErrorKind so the transaction processor can turn it into a
failure result without inspecting the message.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Categories of failure surfaced to callers"""
    INVALID_ARGUMENT = "invalid_argument"  # Malformed input
    INVALID_STATE = "invalid_state"        # Status forbids the operation
    BUSINESS_RULE = "business_rule"        # Funds, floors, notice periods
    NOT_FOUND = "not_found"                # Referenced entity absent
    PERMISSION_DENIED = "permission_denied"  # Actor lacks the required role
    UNEXPECTED = "unexpected"              # Storage or programming failure


class BusinessRule(Enum):
    """Business rules that can reject an otherwise valid request"""
    INSUFFICIENT_FUNDS = "insufficient_funds"
    MINIMUM_BALANCE = "minimum_balance"
    NOTICE_PERIOD = "notice_period"
    INITIAL_DEPOSIT = "initial_deposit"


class BankingError(Exception):
    """Base exception for all banking engine errors."""

    kind = ErrorKind.UNEXPECTED

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidArgumentError(BankingError, ValueError):
    """Raised when input is malformed: empty ids, non-positive amounts."""

    kind = ErrorKind.INVALID_ARGUMENT


class InvalidStateError(BankingError):
    """Raised when the account status does not permit the operation."""

    kind = ErrorKind.INVALID_STATE


class BusinessRuleViolation(BankingError):
    """Raised when a business rule rejects the operation."""

    kind = ErrorKind.BUSINESS_RULE

    def __init__(self, rule: BusinessRule, message: str):
        self.rule = rule
        super().__init__(message)


class NotFoundError(BankingError, LookupError):
    """Raised when a referenced account, customer or user does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, identifier: Optional[str]):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class PermissionDeniedError(BankingError, PermissionError):
    """Raised when the acting user's role does not allow the operation."""

    kind = ErrorKind.PERMISSION_DENIED
