from fastapi import HTTPException, status

from app.core.errors import FailureKind, MutationResult

_STATUS = {
    FailureKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    FailureKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def unwrap(result: MutationResult):
    """Return the result value or raise the matching HTTP error."""
    if not result.ok:
        raise HTTPException(status_code=_STATUS[result.kind], detail=result.error)
    return result.value
