# =============================================================================
# app/routers/translate.py - Text Translation Endpoint
# =============================================================================
# POST /api/translate translates user-generated text between en, ar and ku.
# =============================================================================

import logging

from fastapi import APIRouter

from core.models.message import TranslateRequest, TranslateResponse
from core.services.translation_service import TranslationError, TranslationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=TranslateResponse, response_model_exclude_none=True)
async def translate(request: TranslateRequest):
    """
    Translate a piece of text.

    Empty text returns an empty translation and identical locales return
    the text untouched. Any model failure is reported as "Translation failed".
    """
    try:
        return TranslationService.translate(request)
    except TranslationError as e:
        logger.error(f"Translation API error: {e.message}")
        raise TranslationError()
