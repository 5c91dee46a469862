# Overview: Route decorators mapping domain errors onto JSON error responses.

from functools import wraps
from flask import current_app

from .database import ConstraintViolation, TransientConnectionError
from .validation import ValidationError
from .services.sales_service import ItemNotFound, InsufficientStock, SaleError
from .services.return_service import (
    DuplicateReturn,
    InvalidReturnTransition,
    ReturnError,
    ReturnNotFound,
)
from .services.inventory_service import InventoryError
from .services.customer_service import CustomerError
from .services.supplier_service import SupplierError
from .services.user_service import UserError
from .services.reporting_service import ReportError


# Most specific first: subclasses must precede their base class
ERROR_STATUS = (
    (ValidationError, 400),
    (ItemNotFound, 404),
    (InsufficientStock, 400),
    (SaleError, 400),
    (DuplicateReturn, 400),
    (ReturnNotFound, 404),
    (InvalidReturnTransition, 409),
    (ReturnError, 400),
    (InventoryError, 404),
    (CustomerError, 404),
    (SupplierError, 404),
    (UserError, 404),
    (ReportError, 400),
    (ConstraintViolation, 400),
    (TransientConnectionError, 503),
)


def error_response(message: str, status: int, details: dict | None = None):
    body = {"success": False, "message": message}
    if details:
        body["details"] = details
    return body, status


def status_for(exc: BaseException) -> int | None:
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status
    return None


def json_errors(failure_message: str):
    """
    Translate domain exceptions raised by a route into `{success: false, message}`.

    Anything unmapped is logged with its traceback and answered with a
    generic 500 carrying `failure_message`.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except Exception as e:
                status = status_for(e)
                if status is None:
                    current_app.logger.exception(failure_message)
                    return error_response(failure_message, 500)
                if status == 503:
                    current_app.logger.error("%s: %s", failure_message, e)
                    return error_response("Database temporarily unavailable", 503)
                if isinstance(e, ConstraintViolation) and e.is_unique:
                    return error_response(str(e) if "already exists" in str(e) else "Duplicate value", 400)
                return error_response(str(e), status, getattr(e, "details", None))
        return decorated_function
    return decorator
