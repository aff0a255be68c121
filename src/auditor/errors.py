# src/auditor/errors.py
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Error taxonomy codes carried by terminal events and Failed results."""
    FETCH_ERROR = "FETCH_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    TIMEOUT = "TIMEOUT"
    RULE_EVALUATION = "RULE_EVALUATION"
    INVALID_INPUT = "INVALID_INPUT"
    DUPLICATE_RULE = "DUPLICATE_RULE"
    CANCELLED = "CANCELLED"
    INTERNAL = "INTERNAL"


class AuditorError(Exception):
    """Base class for all errors raised by the audit engine."""
    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class AcquisitionError(AuditorError):
    """The document could not be acquired. Fatal to the run."""


class FetchError(AcquisitionError):
    code = ErrorCode.FETCH_ERROR

    def __init__(self, message: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ParseError(AcquisitionError):
    code = ErrorCode.PARSE_ERROR


class AcquisitionTimeoutError(AcquisitionError):
    code = ErrorCode.TIMEOUT


class RuleEvaluationError(AuditorError):
    """
    A single rule raised while evaluating a document.
    Never fatal: the engine drops that rule's contribution and reports the error as a diagnostic.
    """
    code = ErrorCode.RULE_EVALUATION

    def __init__(self, rule_id: str, cause: BaseException):
        super().__init__(f"Rule '{rule_id}' failed: {cause!r}")
        self.rule_id = rule_id
        self.cause = cause


class InvalidInputError(AuditorError):
    code = ErrorCode.INVALID_INPUT


class DuplicateRuleError(AuditorError):
    code = ErrorCode.DUPLICATE_RULE

    def __init__(self, rule_id: str):
        super().__init__(f"A rule with id '{rule_id}' is already registered")
        self.rule_id = rule_id


class AuditCancelledError(AuditorError):
    """Raised inside a run when the cancellation signal is observed. A normal terminal outcome."""
    code = ErrorCode.CANCELLED
