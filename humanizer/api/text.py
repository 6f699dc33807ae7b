"""
Text transformation API.

- POST /transform: transform text, paid from the caller's credits
- GET  /history: paginated history, newest first
- GET  /history/{record_id}: one record owned by the caller
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from humanizer.core.auth import get_current_user_id
from humanizer.core.config import settings
from humanizer.features.history.service import get_for_user, list_for_user
from humanizer.features.pipeline.service import PipelineOrchestrator
from humanizer.models.transformation import TransformationRecord


router = APIRouter(tags=["text"])


class TransformRequest(BaseModel):
    # Optional so a missing text reaches the pipeline's own validation (400)
    text: Optional[str] = None
    level: Any = None  # unrecognized values degrade to moderate


def record_to_json(record: TransformationRecord) -> dict:
    return {
        "id": record.id,
        "originalText": record.original_text,
        "transformedText": record.transformed_text,
        "characterCount": record.character_count,
        "creditsUsed": record.credits_used,
        "level": record.level.value,
        "createdAt": record.created_at.isoformat(),
    }


@router.post("/transform", status_code=201)
def transform_text(
    body: TransformRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
):
    """
    Errors:
        400: text missing or blank
        403: insufficient credits ({message, creditsNeeded})
        500: transformation or persistence failed (credits not charged)
    """
    rid = getattr(request.state, "request_id", None)
    record = PipelineOrchestrator().run(user_id, body.text, body.level, request_id=rid)
    return record_to_json(record)


@router.get("/history")
def get_history(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.HISTORY_DEFAULT_LIMIT, ge=1, le=settings.HISTORY_MAX_LIMIT),
    user_id: str = Depends(get_current_user_id),
):
    total, records = list_for_user(user_id, page=page, limit=limit)
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "data": [record_to_json(r) for r in records],
    }


@router.get("/history/{record_id}")
def get_history_record(record_id: int, user_id: str = Depends(get_current_user_id)):
    return record_to_json(get_for_user(user_id, record_id))
