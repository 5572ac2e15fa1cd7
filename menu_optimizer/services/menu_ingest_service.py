"""Turn an uploaded menu file into menu items."""

from __future__ import annotations

import asyncio
import base64
import io
import logging
import mimetypes
import re
import unicodedata
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional

import httpx
from openai import OpenAIError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from menu_optimizer.config.openai_client import MENU_VISION_MODEL, OPTIMIZER_MODEL, get_openai_client
from menu_optimizer.config.supabase_client import SUPABASE_URL
from menu_optimizer.repositories.menu_items import MenuItemRepository
from menu_optimizer.schemas import MenuFileReference, MenuItem
from menu_optimizer.services.llm_json import LLMResponseError, TruncatedResponse, parse_json_object, preview_text

MenuKind = Literal["image", "pdf"]

PDF_MIME_TYPE = "application/pdf"

MIME_BY_EXTENSION: Dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".heic": "image/heic",
    ".pdf": PDF_MIME_TYPE,
}
MIME_ALIASES = {"image/jpg": "image/jpeg"}

MAX_FILE_BYTES = 8 * 1024 * 1024  # 8 MB
MAX_PDF_TEXT_CHARS = 15000
DOWNLOAD_TIMEOUT_SECONDS = 30.0
STORAGE_OBJECT_PATH = "/storage/v1/object/"
TOKEN_BUDGETS = (6000, 10000)
PRICE_PATTERN = re.compile(r"\d+(?:[.,]\d+)?")

SYSTEM_INSTRUCTIONS = (
    "Tu reçois la carte d'un restaurant et tu dois produire un JSON structuré. "
    "Réponds UNIQUEMENT avec du JSON valide, sans texte autour. "
    "Le format attendu est : {\"categories\": [{\"name\": str, \"items\": [{\"name\": str, \"price\": float | str, "
    "\"description\": str, \"ingredients\": [str], \"tags\": [str]}]}]}. "
    "Déduis les tags diététiques pertinents (ex: vegan, épicé, sans gluten) lorsque l'information est implicite. "
    "Utilise la langue dominante du menu pour les champs textuels et conserve l'ordre logique du menu."
)

logger = logging.getLogger(__name__)


class MenuExtractionError(RuntimeError):
    """Raised when menu extraction fails."""


@dataclass(frozen=True)
class UploadMeta:
    filename: str
    mime_type: str
    kind: MenuKind


def check_storage_url(download_url: str, storage_url: Optional[str]) -> httpx.URL:
    """Accept only object URLs served by the configured Supabase storage."""

    if not storage_url:
        raise MenuExtractionError("SUPABASE_URL manquante : stockage des menus indisponible.")
    try:
        url = httpx.URL(download_url)
    except httpx.InvalidURL as exc:
        raise MenuExtractionError("Lien de téléchargement du menu invalide.") from exc

    storage = httpx.URL(storage_url)
    prefix = storage.path.rstrip("/") + STORAGE_OBJECT_PATH
    if (
        url.scheme != storage.scheme
        or url.host != storage.host
        or url.port != storage.port
        or not url.path.startswith(prefix)
        or ".." in url.path.split("/")
    ):
        logger.warning("Menu download outside storage refused", extra={"host": url.host})
        raise MenuExtractionError("Le lien du menu doit pointer vers le stockage Supabase.")
    return url


async def download_menu_file(
    reference: MenuFileReference,
    *,
    storage_url: Optional[str] = SUPABASE_URL,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bytes:
    """Fetch the uploaded file through its signed storage download URL."""

    url = check_storage_url(reference.download_url, storage_url)
    try:
        async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT_SECONDS, transport=transport) as client:
            response = await client.get(url)
    except httpx.HTTPError as exc:
        logger.error("Menu download failed: %s", exc)
        raise MenuExtractionError("Impossible de télécharger le fichier du menu.") from exc

    if response.status_code >= 400:
        logger.error(
            "Menu download rejected",
            extra={"status_code": response.status_code, "file_name": reference.file_name},
        )
        raise MenuExtractionError("Le lien de téléchargement du menu est invalide ou expiré.")
    return response.content


async def build_menu_document(*, filename: str, content_type: Optional[str], data: bytes) -> Dict[str, Any]:
    """Return a structured menu document parsed from the file bytes."""

    if not data:
        raise MenuExtractionError("Le fichier envoyé est vide.")
    if len(data) > MAX_FILE_BYTES:
        raise MenuExtractionError("Le fichier dépasse la taille maximale autorisée (8 MB).")

    meta = detect_upload_meta(filename, content_type)

    if meta.kind == "pdf":
        text = _extract_pdf_text(data)
        if not text.strip():
            raise MenuExtractionError("Impossible de lire le texte du PDF fourni.")
        request_callable = partial(_request_menu_from_text, text)
    else:
        image_b64 = base64.b64encode(data).decode("ascii")
        request_callable = partial(_request_menu_from_image, image_b64, meta.mime_type)

    return await _generate_menu_with_retries(request_callable)


async def _generate_menu_with_retries(request_callable: Callable[..., str]) -> Dict[str, Any]:
    """Retry with a larger token allowance while the JSON comes back truncated."""

    last_truncation: Optional[TruncatedResponse] = None
    for budget in TOKEN_BUDGETS:
        try:
            completion_text = await asyncio.to_thread(request_callable, max_tokens=budget)
        except (OpenAIError, RuntimeError) as exc:
            raise MenuExtractionError(str(exc)) from exc
        logger.debug(
            "Menu extraction raw response (max_tokens=%s): %s",
            budget,
            preview_text(completion_text, 600),
        )
        try:
            return parse_menu_json(completion_text)
        except TruncatedResponse as exc:
            last_truncation = exc
            logger.info("Menu JSON truncated with token budget %s, retrying with a larger allowance.", budget)

    raise MenuExtractionError(str(last_truncation) if last_truncation else "Impossible de générer un menu complet.")


def _is_supported(mime_type: str) -> bool:
    return mime_type == PDF_MIME_TYPE or mime_type.startswith("image/")


def detect_upload_meta(filename: str, content_type: Optional[str]) -> UploadMeta:
    """Trust the declared content type when usable, else go by the file name."""

    mime_type = (content_type or "").lower()
    mime_type = MIME_ALIASES.get(mime_type, mime_type)
    if not _is_supported(mime_type):
        extension = Path(filename or "").suffix.lower()
        mime_type = MIME_BY_EXTENSION.get(extension) or (mimetypes.guess_type(filename or "")[0] or "").lower()
    if not _is_supported(mime_type):
        raise MenuExtractionError("Format de fichier non pris en charge. Utilisez une image (PNG, JPG, WEBP...) ou un PDF.")

    kind: MenuKind = "pdf" if mime_type == PDF_MIME_TYPE else "image"
    return UploadMeta(filename=filename, mime_type=mime_type, kind=kind)


def _extract_pdf_text(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as exc:
        raise MenuExtractionError("Impossible d'ouvrir le PDF : fichier corrompu ou chiffré.") from exc
    return "\n".join(pages)[:MAX_PDF_TEXT_CHARS]


def _request_menu_from_text(menu_text: str, *, max_tokens: int) -> str:
    completion = get_openai_client().chat.completions.create(
        model=OPTIMIZER_MODEL,
        temperature=0,
        response_format={"type": "json_object"},
        messages=[
            {"role": "system", "content": SYSTEM_INSTRUCTIONS},
            {
                "role": "user",
                "content": f"Analyse le texte suivant, qui correspond à un menu, et convertis-le en JSON.\n{menu_text}",
            },
        ],
        max_tokens=max_tokens,
    )
    return completion.choices[0].message.content or ""


def _request_menu_from_image(image_b64: str, mime_type: str, *, max_tokens: int) -> str:
    data_url = f"data:{mime_type};base64,{image_b64}"
    completion = get_openai_client().chat.completions.create(
        model=MENU_VISION_MODEL,
        temperature=0,
        response_format={"type": "json_object"},
        messages=[
            {"role": "system", "content": SYSTEM_INSTRUCTIONS},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Lis cette carte et convertis-la en JSON."},
                    {"type": "image_url", "image_url": {"url": data_url}},
                ],
            },
        ],
        max_tokens=max_tokens,
    )
    return completion.choices[0].message.content or ""


def parse_menu_json(raw_response: str) -> Dict[str, Any]:
    try:
        payload = parse_json_object(raw_response)
    except TruncatedResponse:
        raise
    except LLMResponseError as exc:
        raise MenuExtractionError(str(exc)) from exc

    categories = payload.get("categories")
    if not isinstance(categories, list) or not categories:
        raise MenuExtractionError("Le JSON généré ne contient aucune catégorie.")
    return payload


def _normalize_tag(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("label") or value.get("name") or value.get("value")
    if value is None:
        return None
    label = str(value).strip()
    if not label:
        return None
    normalized = unicodedata.normalize("NFKD", label)
    return "".join(char for char in normalized if not unicodedata.combining(char)).lower()


def parse_price(value: Any) -> float:
    """Read prices such as ``12``, ``"12,50 €"`` or ``"9.90"``; unreadable prices become 0."""

    if isinstance(value, (int, float)):
        return max(float(value), 0.0)
    match = PRICE_PATTERN.search(str(value or ""))
    if not match:
        return 0.0
    return float(match.group(0).replace(",", "."))


def menu_document_to_items(restaurant_id: str, document: Dict[str, Any]) -> List[MenuItem]:
    items: List[MenuItem] = []
    for category in document.get("categories") or []:
        if not isinstance(category, dict):
            continue
        category_name = str(category.get("name") or "").strip() or "Autres"
        for entry in category.get("items") or []:
            if not isinstance(entry, dict):
                continue
            name = str(entry.get("name") or "").strip()
            if not name:
                continue
            tags = [tag for tag in (_normalize_tag(raw) for raw in entry.get("tags") or []) if tag]
            ingredients = [str(raw).strip() for raw in entry.get("ingredients") or [] if str(raw).strip()]
            items.append(
                MenuItem(
                    restaurant_id=restaurant_id,
                    name=name,
                    description=str(entry.get("description") or "").strip(),
                    price=parse_price(entry.get("price")),
                    category=category_name,
                    ingredients=ingredients,
                    dietary_tags=tags,
                )
            )
    return items


class MenuIngestService:
    def __init__(
        self,
        *,
        menu_items: MenuItemRepository,
        storage_url: Optional[str] = SUPABASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.menu_items = menu_items
        self.storage_url = storage_url
        self.transport = transport

    async def extract_document(self, reference: MenuFileReference) -> Dict[str, Any]:
        data = await download_menu_file(reference, storage_url=self.storage_url, transport=self.transport)
        return await build_menu_document(
            filename=reference.file_name,
            content_type=reference.content_type,
            data=data,
        )

    async def parse_and_store(self, restaurant_id: str, reference: MenuFileReference) -> List[MenuItem]:
        document = await self.extract_document(reference)
        items = menu_document_to_items(restaurant_id, document)
        if not items:
            raise MenuExtractionError("Aucun plat n'a pu être extrait du menu.")
        created = await self.menu_items.batch_create(items)
        logger.info(
            "Menu parsed",
            extra={"restaurant_id": restaurant_id, "file_name": reference.file_name, "items": len(created)},
        )
        return created


__all__ = [
    "MenuExtractionError",
    "MenuIngestService",
    "build_menu_document",
    "detect_upload_meta",
    "check_storage_url",
    "download_menu_file",
    "menu_document_to_items",
    "parse_menu_json",
    "parse_price",
]
