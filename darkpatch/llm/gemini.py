"""
Gemini Model Manager - Singleton for shared model instance.

The API proxy and the in-process GeminiGenerator share one model instance.

Supports two backends:
  1. Vertex AI SDK (production) - uses GOOGLE_CLOUD_PROJECT + service account
  2. google-generativeai (local dev) - uses GOOGLE_API_KEY
"""

from __future__ import annotations

import os
from functools import lru_cache

from darkpatch.infrastructure.settings import (
    GEMINI_LOCATION,
    GEMINI_MAX_TOKENS,
    GEMINI_MODEL,
    GEMINI_TEMPERATURE,
    GOOGLE_CLOUD_PROJECT,
)
from darkpatch.observability.logging import get_logger

logger = get_logger(__name__)

GENERATION_CONFIG = {
    "temperature": GEMINI_TEMPERATURE,
    "max_output_tokens": GEMINI_MAX_TOKENS,
    "response_mime_type": "application/json",
}


class GeminiInitializationError(RuntimeError):
    """Raised when Gemini model cannot be initialized."""


@lru_cache(maxsize=1)
def get_gemini_model():
    """
    Get or create shared Gemini model instance.

    Tries Vertex AI SDK first (production). Falls back to google-generativeai
    with GOOGLE_API_KEY for local development.

    Returns:
        GenerativeModel: Shared Gemini model

    Raises:
        GeminiInitializationError: If model cannot be initialized
    """
    project = GOOGLE_CLOUD_PROJECT or os.getenv("GOOGLE_CLOUD_PROJECT")
    if project:
        try:
            import vertexai
            from vertexai.generative_models import GenerativeModel

            location = GEMINI_LOCATION or "us-central1"
            vertexai.init(project=project, location=location)
            model = GenerativeModel(GEMINI_MODEL)

            logger.info(
                "Initialized Gemini model (Vertex AI): project=%s, location=%s, model=%s",
                project,
                location,
                GEMINI_MODEL,
            )
            return model

        except ImportError:
            logger.info("Vertex AI SDK not installed, trying google-generativeai fallback")
    else:
        logger.info("GOOGLE_CLOUD_PROJECT not set, trying google-generativeai")

    try:
        import google.generativeai as genai

        api_key = os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise GeminiInitializationError(
                "Neither vertexai nor GOOGLE_API_KEY available. "
                "Install google-cloud-aiplatform or set GOOGLE_API_KEY."
            )

        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(GEMINI_MODEL)

        logger.info("Initialized Gemini model (google-generativeai): model=%s", GEMINI_MODEL)
        return model

    except ImportError as e:
        raise GeminiInitializationError(
            "No Gemini SDK available. Install google-cloud-aiplatform or google-generativeai."
        ) from e
    except GeminiInitializationError:
        raise
    except Exception as e:
        logger.error("Failed to initialize Gemini model: %s", e)
        raise GeminiInitializationError(f"Failed to initialize Gemini: {e}") from e


def generate_text(prompt: str) -> str:
    """
    Blocking single-shot generation with the shared model.

    Raises:
        GeminiInitializationError: If no model can be initialized
    """
    model = get_gemini_model()
    response = model.generate_content(prompt, generation_config=GENERATION_CONFIG)
    return response.text


def clear_model_cache() -> None:
    """Clear the cached model instance (tests, reconfiguration)."""
    get_gemini_model.cache_clear()
    logger.info("Cleared Gemini model cache")
