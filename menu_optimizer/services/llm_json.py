"""Helpers to pull a JSON object out of a language model completion."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict

CODE_FENCE_PATTERN = re.compile(r"```(json)?(.*?)```", re.DOTALL | re.IGNORECASE)
logger = logging.getLogger(__name__)


class LLMResponseError(RuntimeError):
    """Raised when a completion does not contain a usable JSON object."""


class TruncatedResponse(LLMResponseError):
    """Raised when the model stopped before closing the JSON payload."""


def parse_json_object(raw_response: str) -> Dict[str, Any]:
    """Return the first JSON object found in ``raw_response``."""

    candidate = strip_code_fences(raw_response)
    candidate = extract_first_json_object(candidate)
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        preview = preview_text(candidate)
        logger.warning("LLM JSON parsing failed. preview=%s", preview)
        raise LLMResponseError("Le format JSON renvoyé par l'IA est invalide. Aperçu: " + preview) from exc
    if not isinstance(payload, dict):
        raise LLMResponseError("La réponse de l'IA n'est pas un objet JSON.")
    return payload


def strip_code_fences(raw_text: str) -> str:
    if not raw_text:
        raise LLMResponseError("L'IA n'a renvoyé aucun contenu.")
    text = raw_text.strip()
    match = CODE_FENCE_PATTERN.search(text)
    if match:
        text = match.group(2).strip()
    if text.lower().startswith("json"):
        text = text[4:].lstrip()
    return text


def extract_first_json_object(text: str) -> str:
    """Best-effort extraction of the first balanced JSON object in the text."""

    start = text.find("{")
    if start == -1:
        raise LLMResponseError("Impossible de trouver un objet JSON dans la réponse de l'IA.")

    depth = 0
    in_string = False
    escape = False
    for idx in range(start, len(text)):
        char = text[idx]
        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]

    preview = preview_text(text)
    logger.warning("Truncated JSON detected. preview=%s", preview)
    raise TruncatedResponse("La réponse de l'IA semble tronquée : JSON incomplet. Aperçu: " + preview)


def preview_text(text: str, limit: int = 280) -> str:
    safe = (text or "").replace("\n", " ").strip()
    if len(safe) <= limit:
        return safe
    return safe[: limit - 3] + "..."


__all__ = [
    "LLMResponseError",
    "TruncatedResponse",
    "parse_json_object",
    "strip_code_fences",
    "extract_first_json_object",
    "preview_text",
]
