"""Outcome → HTTP translation shared by the routers."""

from typing import Any, Dict

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse

from purchase_flow.integrations.api_client import ApiError
from purchase_flow.models.outcome import ErrorKind, Failed
from purchase_flow.services.guarded_mutation import describe_api_error

ERROR_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.ILLEGAL_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.NO_PENDING_REQUEST: status.HTTP_409_CONFLICT,
    ErrorKind.MISSING_PAYLOAD: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INSUFFICIENT_STOCK: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INVALID_QUANTITY: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.REMOTE_FAILURE: status.HTTP_502_BAD_GATEWAY,
}


def ignored_response() -> JSONResponse:
    """Duplicate click while a call is outstanding: accepted, nothing done."""
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"ok": False, "ignored": True},
    )


def failure_response(failure: Failed) -> Any:
    """Return the 202 no-op for ALREADY_IN_FLIGHT, raise HTTPException otherwise."""
    if failure.kind is ErrorKind.ALREADY_IN_FLIGHT:
        return ignored_response()
    raise HTTPException(
        status_code=ERROR_STATUS.get(failure.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=failure.to_dict(),
    )


def raise_for_api_error(exc: ApiError, what: str) -> None:
    """Authoritative reads: 404 passes through, everything else is a 502."""
    if exc.status == status.HTTP_404_NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")
    raise HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=Failed(ErrorKind.REMOTE_FAILURE, describe_api_error(exc), exc.status or None).to_dict(),
    ) from exc
