import json
import logging
import time
from typing import Any, Dict

from flask import current_app
from google import genai
from google.genai import types

logger = logging.getLogger(__name__)


class GeminiInvalidResponseException(Exception):
    pass


def _client() -> genai.Client:
    api_key = current_app.config.get("GEMINI_API_KEY")
    if not api_key:
        raise RuntimeError("GEMINI_API_KEY is not configured")
    return genai.Client(api_key=api_key)


def call_json(prompt: str, *, system_instruction: str | None = None) -> Dict[str, Any]:
    """
    Call Gemini and parse a JSON object out of the reply.
    Raises GeminiInvalidResponseException on an empty or non-object reply.
    """
    cfg = current_app.config
    model = cfg.get("GEMINI_MODEL", "gemini-2.5-flash")
    start_time = time.time()
    response = _client().models.generate_content(
        model=model,
        contents=prompt,
        config=types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=cfg.get("GEMINI_TEMPERATURE", 0.7),
            max_output_tokens=cfg.get("GEMINI_MAX_TOKENS", 2048),
            response_mime_type="application/json",
        ),
    )
    logger.info("gemini_call model=%s took=%.2fs", model, time.time() - start_time)
    if not response.text:
        raise GeminiInvalidResponseException("Empty response from Gemini")
    try:
        data = json.loads(response.text)
    except ValueError as e:
        raise GeminiInvalidResponseException("Gemini returned invalid JSON") from e
    if not isinstance(data, dict):
        raise GeminiInvalidResponseException("Gemini returned a non-object JSON value")
    return data
