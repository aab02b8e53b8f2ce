"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt

    Domain errors set ``code`` and ``retryable`` so callers can tell a lost
    capacity race (retry the whole request) from a request that will never
    succeed without changing its input.
    """

    code: Optional[str] = None
    retryable: Optional[bool] = None

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        # Create the problem details object
        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        if self.code is not None:
            self.problem_details["code"] = self.code

        if self.retryable is not None:
            self.problem_details["retryable"] = self.retryable

        # Add extensions
        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    code = "AUTHENTICATION_REQUIRED"

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri="https://example.com/problems/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    code = "NOT_FOUND"
    retryable = False

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        title: str = "Resource Conflict",
        type_uri: str = "https://example.com/problems/resource-conflict",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        extensions: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = dict(extensions or {})
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title=title,
            detail=detail,
            type_uri=type_uri,
            instance=instance,
            extensions=extensions,
        )


# Allocation and booking errors

class NoMasterRateError(ProblemDetailsException):
    """No sellable master rate exists for the variant on the requested date."""

    code = "NO_MASTER_RATE"
    retryable = False

    def __init__(self, product_variant_id: str, service_date: date, item_index: Optional[int] = None):
        self.product_variant_id = product_variant_id
        self.service_date = service_date
        self.item_index = item_index

        extensions = {
            "product_variant_id": product_variant_id,
            "service_date": service_date.isoformat(),
        }
        if item_index is not None:
            extensions["item_index"] = item_index

        super().__init__(
            status_code=422,
            title="No Master Rate",
            detail=f"No master rate is valid for variant {product_variant_id} on {service_date.isoformat()}",
            type_uri="https://example.com/problems/no-master-rate",
            extensions=extensions,
        )


class NoSupplierAvailableError(ConflictError):
    """No supplier passes the sellability and capacity filters."""

    code = "NO_SUPPLIER_AVAILABLE"
    retryable = False

    def __init__(
        self,
        product_variant_id: str,
        service_date: date,
        requested_quantity: int,
        best_available: int = 0,
        item_index: Optional[int] = None,
    ):
        self.product_variant_id = product_variant_id
        self.service_date = service_date
        self.requested_quantity = requested_quantity
        self.best_available = best_available
        self.item_index = item_index

        extensions = {
            "product_variant_id": product_variant_id,
            "service_date": service_date.isoformat(),
            "requested_quantity": requested_quantity,
            "best_available": best_available,
        }
        if item_index is not None:
            extensions["item_index"] = item_index

        super().__init__(
            detail=(
                f"No supplier can fulfil {requested_quantity} unit(s) of variant "
                f"{product_variant_id} on {service_date.isoformat()}"
            ),
            title="No Supplier Available",
            type_uri="https://example.com/problems/no-supplier-available",
            extensions=extensions,
        )


class CapacityExceededError(ConflictError):
    """A conditional capacity update matched no row at commit time."""

    code = "CAPACITY_EXCEEDED"
    retryable = True

    def __init__(
        self,
        allocation_record_id: str,
        requested_quantity: int,
        inventory_pool_id: Optional[str] = None,
        item_index: Optional[int] = None,
    ):
        self.allocation_record_id = allocation_record_id
        self.requested_quantity = requested_quantity
        self.inventory_pool_id = inventory_pool_id

        extensions: Dict[str, Any] = {
            "allocation_record_id": allocation_record_id,
            "requested_quantity": requested_quantity,
        }
        if inventory_pool_id:
            extensions["inventory_pool_id"] = inventory_pool_id
        if item_index is not None:
            extensions["item_index"] = item_index

        target = f"pool {inventory_pool_id}" if inventory_pool_id else f"allocation {allocation_record_id}"
        super().__init__(
            detail=f"Capacity on {target} was exhausted before {requested_quantity} unit(s) could be booked",
            title="Capacity Exceeded",
            type_uri="https://example.com/problems/capacity-exceeded",
            extensions=extensions,
        )


class TransactionConflictError(ConflictError):
    """The store aborted the transaction (serialization failure or deadlock)."""

    code = "TRANSACTION_CONFLICT"
    retryable = True

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            detail=detail or "The transaction conflicted with a concurrent transaction",
            title="Transaction Conflict",
            type_uri="https://example.com/problems/transaction-conflict",
        )


class AlreadyCancelledError(ConflictError):
    """The booking or booking item has already been cancelled."""

    code = "ALREADY_CANCELLED"
    retryable = False

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            detail=f"The {resource_type} with ID '{resource_id}' is already cancelled",
            title="Already Cancelled",
            type_uri="https://example.com/problems/already-cancelled",
            extensions={"resource_type": resource_type, "resource_id": resource_id},
        )


class DuplicateReferenceError(ConflictError):
    """A booking with the same reference already exists in the organization."""

    code = "DUPLICATE_REFERENCE"
    retryable = False

    def __init__(self, reference: str):
        super().__init__(
            detail=f"A booking with reference '{reference}' already exists",
            title="Duplicate Reference",
            type_uri="https://example.com/problems/duplicate-reference",
            conflicting_resource={"reference": reference},
        )


class HoldExpiredError(ConflictError):
    """The hold passed its expiry before it was confirmed."""

    code = "HOLD_EXPIRED"
    retryable = False

    def __init__(self, hold_id: str, expires_at: datetime):
        super().__init__(
            detail=f"The hold with ID '{hold_id}' expired at {expires_at.isoformat()}",
            title="Hold Expired",
            type_uri="https://example.com/problems/hold-expired",
            extensions={"hold_id": hold_id, "expires_at": expires_at.isoformat()},
        )


class HoldNotActiveError(ConflictError):
    """The hold was already confirmed, released or expired."""

    code = "HOLD_NOT_ACTIVE"
    retryable = False

    def __init__(self, hold_id: str, status: str):
        super().__init__(
            detail=f"The hold with ID '{hold_id}' is {status}",
            title="Hold Not Active",
            type_uri="https://example.com/problems/hold-not-active",
            extensions={"hold_id": hold_id, "hold_status": status},
        )


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    content = dict(exc.problem_details)
    content.setdefault("instance", request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Convert request validation failures to Problem Details with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": "https://example.com/problems/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "The request data failed validation",
            "instance": request.url.path,
            "code": "VALIDATION_ERROR",
            "retryable": False,
            "violations": violations,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    problem_details = {
        "type": "https://example.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": str(uuid.uuid4()),
        "timestamp": _utc_timestamp(),
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
    )
