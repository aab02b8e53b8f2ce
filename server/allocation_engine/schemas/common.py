"""Problem Details schemas shared by the RPC routers, for OpenAPI documentation."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Violation(BaseModel):
    """One failed request field."""

    path: str = Field(..., description="Dotted location of the invalid field, e.g. body.items.0.quantity")
    message: str = Field(..., description="Validation error message")


class Problem(BaseModel):
    """
    RFC 9457 Problem Details body returned for every domain failure.

    Extension members depend on ``code``: selection and capacity failures carry
    ``item_index``/``service_date``/``product_variant_id``, duplicate references
    carry ``conflicting_resource``, request validation carries ``violations``.
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field("about:blank", description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Explanation of this occurrence")
    instance: Optional[str] = Field(None, description="RPC path that produced the problem")
    code: Optional[str] = Field(None, description="Stable machine-readable error code")
    retryable: Optional[bool] = Field(None, description="True when resubmitting the same request may succeed")
    item_index: Optional[int] = Field(None, description="Zero-based index of the failing booking item")
    violations: Optional[List[Violation]] = Field(None, description="Request validation failures")


def _problem(description: str) -> Dict[str, Any]:
    return {
        "model": Problem,
        "description": description,
        "content": {"application/problem+json": {}},
    }


AUTH_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    401: _problem("Missing, expired or invalid bearer token"),
    422: _problem("Request validation failed"),
}

BOOKING_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    **AUTH_RESPONSES,
    404: _problem("Booking or booking item not found in the caller's organization"),
    409: _problem(
        "NO_SUPPLIER_AVAILABLE, CAPACITY_EXCEEDED, TRANSACTION_CONFLICT, "
        "DUPLICATE_REFERENCE or ALREADY_CANCELLED"
    ),
}

AVAILABILITY_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    **AUTH_RESPONSES,
    409: _problem("NO_SUPPLIER_AVAILABLE for the requested date and quantity"),
}

HOLD_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    **AUTH_RESPONSES,
    404: _problem("Hold not found in the caller's organization"),
    409: _problem(
        "NO_SUPPLIER_AVAILABLE, CAPACITY_EXCEEDED, HOLD_EXPIRED, HOLD_NOT_ACTIVE "
        "or DUPLICATE_REFERENCE"
    ),
}
