# =============================================================================
# core/services/translation_service.py - User Text Translation
# =============================================================================
# Translates user-generated text (chat messages, listing text) between the
# marketplace locales (en, ar, ku) with an OpenAI chat model.
#
# The OpenAI client is created on first use so the API can start without
# OPENAI_API_KEY; only translation requests fail when it is missing.
# =============================================================================

import logging

from openai import OpenAI

from app.config import settings
from app.exceptions import UpstreamError
from core.models.message import DEFAULT_LOCALE, LOCALES, TranslateRequest, TranslateResponse

logger = logging.getLogger(__name__)

MAX_TRANSLATION_CHARS = 4000
TRANSLATION_TEMPERATURE = 0.2

SYSTEM_PROMPT = " ".join([
    "You translate marketplace user-generated content between languages.",
    "Keep brand names and product model names in their original form where natural.",
    "Do not add explanations, comments, or quotes - return only the translated text.",
])


class TranslationError(UpstreamError):
    """Raised when the model call fails or returns nothing usable."""

    def __init__(self, message: str = "Translation failed"):
        super().__init__(message=message, code="TRANSLATION_FAILED")


def resolve_locale(value: str | None) -> str:
    return value if value in LOCALES else DEFAULT_LOCALE


class Translator:
    """
    Thin wrapper around the OpenAI chat completions API.

    Example:
        translator = Translator()
        translator.translate("Is this still available?", "en", "ar")
    """

    def __init__(self, model: str | None = None):
        if not settings.OPENAI_API_KEY:
            raise TranslationError("OPENAI_API_KEY is not configured")
        self.client = OpenAI(api_key=settings.OPENAI_API_KEY)
        self.model = model or settings.OPENAI_TRANSLATION_MODEL
        logger.info(f"Translator initialized with model={self.model}")

    def translate(self, text: str, source_locale: str, target_locale: str) -> str:
        """
        Translate text, returning it unchanged when there is nothing to do.

        Raises:
            TranslationError: API failure or empty completion
        """
        if not text.strip() or source_locale == target_locale:
            return text

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                temperature=TRANSLATION_TEMPERATURE,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": (
                            f"Translate the following text from {source_locale} to {target_locale}:"
                            f"\n\n{text[:MAX_TRANSLATION_CHARS]}"
                        ),
                    },
                ],
            )
        except Exception as e:
            logger.error(f"Translation request failed: {e}")
            raise TranslationError()

        content = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not content:
            raise TranslationError("Translation response did not contain a message")
        return content


_translator: Translator | None = None


def get_translator() -> Translator:
    """Create the shared Translator on first use."""
    global _translator
    if _translator is None:
        _translator = Translator()
    return _translator


class TranslationService:
    """
    Service behind POST /api/translate.
    """

    @staticmethod
    def translate(request: TranslateRequest) -> TranslateResponse:
        """
        Translate a piece of user text into the target locale.

        Unknown locales fall back to English. Empty text short-circuits
        without calling the model.

        Raises:
            TranslationError: Missing API key or model failure
        """
        if not request.text.strip():
            return TranslateResponse(translated_text="")

        source = resolve_locale(request.source_locale)
        target = resolve_locale(request.target_locale)

        if source == target:
            return TranslateResponse(
                translated_text=request.text,
                is_translated=False,
                original_locale=source,
                target_locale=target,
            )

        translated = get_translator().translate(request.text, source, target)
        return TranslateResponse(
            translated_text=translated,
            is_translated=True,
            original_locale=source,
            target_locale=target,
        )
