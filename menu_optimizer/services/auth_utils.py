"""Helpers for working with Supabase access tokens."""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict

from fastapi import HTTPException


def decode_access_token(access_token: str) -> Dict[str, Any]:
    """Return the decoded JWT payload for a Supabase access token.

    The signature is not verified here: PostgREST checks it on every call made
    with the token.
    """

    if not access_token:
        raise HTTPException(status_code=401, detail="Authentification requise.")

    try:
        payload_segment = access_token.split(".")[1]
        padding = "=" * (-len(payload_segment) % 4)
        decoded = base64.urlsafe_b64decode((payload_segment + padding).encode("ascii"))
        payload = json.loads(decoded.decode("utf-8"))
    except (IndexError, ValueError, binascii.Error) as exc:
        raise HTTPException(status_code=401, detail="Jeton d'authentification invalide.") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=401, detail="Jeton d'authentification invalide.")
    return payload


def get_user_id(access_token: str) -> str:
    user_id = decode_access_token(access_token).get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Utilisateur non identifié.")
    return str(user_id)


__all__ = ["decode_access_token", "get_user_id"]
