"""
Translation of core errors into HTTP responses
"""

from fastapi import HTTPException, status

from ..exceptions import (
    AlreadySettled,
    IdempotencyConflict,
    LedgerIntegrityError,
    LendingError,
    LoanClosed,
    NotFoundError,
    RenegotiationError,
)

_CONFLICTS = (AlreadySettled, LoanClosed, IdempotencyConflict, RenegotiationError)


def _plain(value):
    return value if isinstance(value, (str, int, list)) else str(value)


def http_error(error: LendingError) -> HTTPException:
    """Map a core error to an HTTPException carrying its message and details"""
    if isinstance(error, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, _CONFLICTS):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, LedgerIntegrityError):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        code = status.HTTP_400_BAD_REQUEST

    return HTTPException(
        status_code=code,
        detail={
            "error": type(error).__name__,
            "message": error.message,
            "details": {k: _plain(v) for k, v in error.details.items()}
        }
    )
