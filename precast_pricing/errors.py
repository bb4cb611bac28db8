# precast_pricing/errors.py
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    '''
    Machine-readable error codes returned to callers.

    INVALID_PAYLOAD: request body / query failed schema validation
    MISSING_FIELD: a required identifier is missing
    INVALID_FORMULA: formula validation produced errors
    DUPLICATE_MATERIAL: material already present in the formula
    EMPTY_SOURCE_FORMULA / TARGET_HAS_FORMULA / SAME_PIECE: copy_formula rules
    INVALID_PRICE / INVALID_PARAMETERS: negative or malformed numbers
    MISSING_MATERIAL_PRICES: publish blocked by unresolved material prices
    PROCESS_PARAMETERS_MISSING: month cannot be closed without parameters
    PERIOD_CLOSED / PERIOD_ALREADY_CLOSED: month closing guard
    NOT_FOUND: piece / zone / material / row does not exist
    PERSISTENCE_ERROR: underlying store failure
    '''
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    MISSING_FIELD = "MISSING_FIELD"

    INVALID_FORMULA = "INVALID_FORMULA"
    DUPLICATE_MATERIAL = "DUPLICATE_MATERIAL"
    EMPTY_SOURCE_FORMULA = "EMPTY_SOURCE_FORMULA"
    TARGET_HAS_FORMULA = "TARGET_HAS_FORMULA"
    SAME_PIECE = "SAME_PIECE"

    INVALID_PRICE = "INVALID_PRICE"
    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    MISSING_MATERIAL_PRICES = "MISSING_MATERIAL_PRICES"
    PROCESS_PARAMETERS_MISSING = "PROCESS_PARAMETERS_MISSING"

    PERIOD_CLOSED = "PERIOD_CLOSED"
    PERIOD_ALREADY_CLOSED = "PERIOD_ALREADY_CLOSED"

    NOT_FOUND = "NOT_FOUND"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"


class PricingError(Exception):
    """Base class for every error the engine raises on purpose."""

    http_status = 500
    default_code = ErrorCode.PERSISTENCE_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PricingError):
    http_status = 400
    default_code = ErrorCode.INVALID_PAYLOAD


class NotFoundError(PricingError):
    http_status = 404
    default_code = ErrorCode.NOT_FOUND


class ConflictError(PricingError):
    http_status = 409
    default_code = ErrorCode.PERIOD_CLOSED


class PersistenceError(PricingError):
    http_status = 500
    default_code = ErrorCode.PERSISTENCE_ERROR
