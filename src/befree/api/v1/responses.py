from __future__ import annotations

from fastapi import HTTPException, status

from src.befree.domain.models.results import OperationResult

# error_kind -> HTTP status for failed core results.
STATUS_BY_ERROR_KIND = {
    "validation": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "not_found": status.HTTP_404_NOT_FOUND,
    "precondition": status.HTTP_409_CONFLICT,
    "persistence": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def raise_for_result(result: OperationResult) -> None:
    """Turn a failed result into an HTTPException carrying the result as detail."""

    if result.success:
        return
    raise HTTPException(
        status_code=STATUS_BY_ERROR_KIND.get(result.error_kind or "", status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=result.model_dump(mode="json"),
    )
