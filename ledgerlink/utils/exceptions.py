"""Exception helpers for FastAPI routers."""

from typing import NoReturn

from fastapi import HTTPException, status

from ledgerlink.services.errors import ConflictError, NotFoundError, TransferEngineError


def raise_not_found(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=detail,
    ) from cause


def raise_bad_request(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    ) from cause


def raise_conflict(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=detail,
    ) from cause


def raise_for_engine_error(exc: TransferEngineError) -> NoReturn:
    """Map a service exception onto its HTTP status."""
    if isinstance(exc, NotFoundError):
        raise_not_found(str(exc), cause=exc)
    if isinstance(exc, ConflictError):
        raise_conflict(str(exc), cause=exc)
    raise_bad_request(str(exc), cause=exc)
