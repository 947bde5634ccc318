from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status

from src.befree.api.v1.responses import raise_for_result
from src.befree.domain.models.results import SubmissionResult
from src.befree.domain.models.screening import ScreeningKind, ScreeningRecord
from src.befree.domain.models.user import User
from src.befree.security import get_api_key, get_current_user, require_admin
from src.befree.services.screening.service import screening_submission_service

router = APIRouter(
    prefix="/screenings",
    tags=["screenings"],
    dependencies=[Depends(get_api_key)],
)


@router.post("/{kind}", response_model=SubmissionResult, status_code=status.HTTP_201_CREATED)
async def submit_screening(
    kind: ScreeningKind,
    answers: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
) -> SubmissionResult:
    """Submit a completed questionnaire.

    The answers are validated against the questionnaire for ``kind``; field
    errors come back as a 422 whose detail is the failed result.
    """

    result = screening_submission_service.submit_screening(kind, answers, user_id=current_user.id)
    raise_for_result(result)
    return result


@router.get("/{kind}/{screening_id}", response_model=ScreeningRecord)
async def get_screening(
    kind: ScreeningKind,
    screening_id: str,
    current_user: User = Depends(require_admin),
) -> ScreeningRecord:
    record = screening_submission_service.get_screening(kind, screening_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Screening not found")
    return record
