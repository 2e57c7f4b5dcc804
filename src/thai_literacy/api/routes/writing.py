"""
Handwriting API Routes
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
import logging

from thai_literacy.api.dependencies import get_handwriting_service
from thai_literacy.api import serializers
from thai_literacy.core.services.handwriting_service import HandwritingService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["writing"])


class WritingSubmission(BaseModel):
    # Fields stay optional so the service can answer with its own messages
    model_config = ConfigDict(populate_by_name=True)

    image_data: Optional[str] = Field(default=None, alias="imageData")
    target_word: Optional[str] = Field(default=None, alias="targetWord")


# Handlers are sync: the vision call blocks and runs in the threadpool


@router.post("/api/students/{student_id}/writing/save-and-detect")
def save_and_detect(
    student_id: str,
    submission: WritingSubmission,
    handwriting: HandwritingService = Depends(get_handwriting_service),
):
    """Verify a canvas image and record the attempt."""
    result = handwriting.save_and_detect(
        student_id, submission.image_data, submission.target_word
    )
    return {"success": True, "data": result.to_dict()}


@router.post("/api/writing/detect")
def detect(
    submission: WritingSubmission,
    handwriting: HandwritingService = Depends(get_handwriting_service),
):
    """Verify a canvas image without recording it."""
    result = handwriting.detect(submission.image_data, submission.target_word)
    data = result.to_dict()
    for key in ("attempt_id", "image_url", "image_data"):
        data.pop(key)
    return {"success": True, "data": data}


@router.get("/api/students/{student_id}/writing/history")
def get_writing_history(
    student_id: str,
    limit: int = 50,
    offset: int = 0,
    handwriting: HandwritingService = Depends(get_handwriting_service),
):
    history = handwriting.get_writing_history(student_id, limit=limit, offset=offset)
    return {
        "success": True,
        "data": {
            **history,
            "attempts": [serializers.writing_attempt_dict(a) for a in history["attempts"]],
        },
    }
