"""Shared utilities for talking to Supabase/PostgREST."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

from fastapi import HTTPException
from httpx import HTTPError as HttpxError
from postgrest import APIError as PostgrestAPIError
from postgrest import SyncPostgrestClient

from menu_optimizer.config.supabase_client import SUPABASE_ANON_KEY, SUPABASE_URL
from menu_optimizer.services.record_store import (
    BatchWriteError,
    Record,
    RecordNotFoundError,
    RecordStore,
    RecordStoreError,
    TransientStoreError,
)

logger = logging.getLogger(__name__)
T = TypeVar("T")

APPEND_TO_LIST_FUNCTION = "append_to_list"
TRANSIENT_STATUS_CODES = {408, 429, 500, 503, 504}


def extract_bearer_token(header_value: Optional[str]) -> str:
    """Return the Bearer token from an Authorization header."""

    if not header_value:
        raise HTTPException(status_code=401, detail="Authentification requise.")
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Jeton Bearer invalide.")
    token = parts[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Jeton Bearer manquant.")
    return token


def create_postgrest_client(
    access_token: str,
    *,
    prefer: Optional[str] = None,
    api_key: Optional[str] = None,
) -> SyncPostgrestClient:
    """Instantiate a PostgREST client authenticated with the provided token."""

    resolved_api_key = api_key or SUPABASE_ANON_KEY
    if not SUPABASE_URL or not resolved_api_key:
        raise RecordStoreError("Supabase n'est pas configuré.", status_code=500)

    headers: Dict[str, str] = {
        "apikey": resolved_api_key,
        "Accept": "application/json",
    }
    if prefer:
        headers["Prefer"] = prefer

    client = SyncPostgrestClient(f"{SUPABASE_URL.rstrip('/')}/rest/v1", headers=headers)
    client.auth(access_token)
    return client


def postgrest_status(exc: PostgrestAPIError) -> int:
    """Best effort extraction of an HTTP status code from the API error."""

    try:
        return int(exc.code) if exc.code else 502
    except (TypeError, ValueError):
        return 502


def raise_store_error(exc: RecordStoreError, *, context: str) -> None:
    """Map record store errors to FastAPI HTTP exceptions with logging."""

    logger.error("%s failed (%s): %s", context, exc.status_code, exc)
    if isinstance(exc, RecordNotFoundError):
        raise HTTPException(status_code=404, detail="Ressource introuvable.") from exc
    if isinstance(exc, TransientStoreError):
        raise HTTPException(status_code=503, detail="Supabase est temporairement inaccessible.") from exc
    if isinstance(exc, BatchWriteError):
        raise HTTPException(
            status_code=502,
            detail=f"Écriture partielle : {exc.committed} enregistrés, {exc.failed} en échec.",
        ) from exc
    if exc.status_code == 401:
        raise HTTPException(status_code=401, detail="Authentification Supabase requise.") from exc
    if exc.status_code == 403:
        raise HTTPException(status_code=403, detail="Accès refusé à la ressource demandée.") from exc
    raise HTTPException(status_code=502, detail="Erreur lors de la communication avec Supabase.") from exc


class PostgrestRecordStore(RecordStore):
    """Record store backed by Supabase tables exposed through PostgREST."""

    def __init__(self, access_token: str, *, api_key: Optional[str] = None):
        self.access_token = access_token
        self.api_key = api_key

    def _client(self, *, prefer: Optional[str] = None) -> SyncPostgrestClient:
        return create_postgrest_client(self.access_token, prefer=prefer, api_key=self.api_key)

    async def _run(self, label: str, request: Callable[[], T]) -> T:
        start = time.monotonic()
        try:
            result = await asyncio.to_thread(request)
        except PostgrestAPIError as exc:
            status_code = postgrest_status(exc)
            logger.warning(
                "Record store call failed",
                extra={"label": label, "status_code": status_code, "error": exc.message},
            )
            message = exc.message or "Erreur lors de la communication avec Supabase."
            if status_code == 404:
                raise RecordNotFoundError(message, status_code=status_code) from exc
            if status_code in TRANSIENT_STATUS_CODES:
                raise TransientStoreError(message, status_code=status_code) from exc
            raise RecordStoreError(message, status_code=status_code) from exc
        except HttpxError as exc:
            logger.warning(
                "Record store unreachable",
                extra={"label": label, "error": str(exc), "supabase_url": SUPABASE_URL},
            )
            raise TransientStoreError("Supabase est temporairement inaccessible.") from exc

        duration_ms = (time.monotonic() - start) * 1000
        logger.debug(
            "Record store call succeeded",
            extra={"label": label, "duration_ms": round(duration_ms, 2)},
        )
        return result

    async def get_item(self, table: str, key_name: str, key: str) -> Optional[Record]:
        def _request() -> Optional[Record]:
            with self._client() as client:
                response = client.table(table).select("*").eq(key_name, key).limit(1).execute()
                rows = response.data or []
                return rows[0] if rows else None

        return await self._run(f"get:{table}", _request)

    async def put_item(self, table: str, item: Record) -> Record:
        def _request() -> Record:
            with self._client(prefer="return=representation") as client:
                response = client.table(table).upsert(item).execute()
                rows = response.data or []
                return rows[0] if rows else dict(item)

        return await self._run(f"put:{table}", _request)

    async def delete_item(self, table: str, key_name: str, key: str) -> bool:
        def _request() -> bool:
            with self._client(prefer="return=representation") as client:
                response = client.table(table).delete().eq(key_name, key).execute()
                return bool(response.data)

        return await self._run(f"delete:{table}", _request)

    async def update_item(
        self,
        table: str,
        key_name: str,
        key: str,
        attributes: Mapping[str, Any],
    ) -> Record:
        def _request() -> Record:
            with self._client(prefer="return=representation") as client:
                response = client.table(table).update(dict(attributes)).eq(key_name, key).execute()
                rows = response.data or []
                if not rows:
                    raise RecordNotFoundError(f"{table}: aucun enregistrement pour {key_name}={key}.")
                return rows[0]

        return await self._run(f"update:{table}", _request)

    async def query(
        self,
        table: str,
        index_name: str,
        value: Any,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[Record]:
        def _request() -> List[Record]:
            with self._client() as client:
                builder = client.table(table).select("*").eq(index_name, value)
                for attribute, expected in (filters or {}).items():
                    builder = builder.eq(attribute, expected)
                return builder.execute().data or []

        return await self._run(f"query:{table}:{index_name}", _request)

    async def scan(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> List[Record]:
        def _request() -> List[Record]:
            with self._client() as client:
                builder = client.table(table).select("*")
                for attribute, expected in (filters or {}).items():
                    builder = builder.eq(attribute, expected)
                return builder.execute().data or []

        return await self._run(f"scan:{table}", _request)

    async def batch_write(self, table: str, items: Sequence[Record]) -> None:
        self.check_batch_size(items)
        if not items:
            return

        def _request() -> None:
            with self._client() as client:
                client.table(table).upsert(list(items)).execute()

        await self._run(f"batch_write:{table}", _request)

    async def append_to_list(
        self,
        table: str,
        key_name: str,
        key: str,
        attribute: str,
        values: Sequence[Any],
        set_attributes: Optional[Mapping[str, Any]] = None,
    ) -> Record:
        params = {
            "p_table": table,
            "p_key_column": key_name,
            "p_key": key,
            "p_attribute": attribute,
            "p_values": list(values),
            "p_set": dict(set_attributes or {}),
        }

        def _request() -> Record:
            with self._client() as client:
                response = client.rpc(APPEND_TO_LIST_FUNCTION, params).execute()
                data = response.data
                if isinstance(data, list):
                    data = data[0] if data else None
                if not data:
                    raise RecordNotFoundError(f"{table}: aucun enregistrement pour {key_name}={key}.")
                return data

        return await self._run(f"append:{table}:{attribute}", _request)


__all__ = [
    "create_postgrest_client",
    "extract_bearer_token",
    "postgrest_status",
    "raise_store_error",
    "PostgrestRecordStore",
]
