import httpx
import pytest

from conftest import InMemoryRecordStore, Repositories
from menu_optimizer.config.settings import MENU_ITEMS_TABLE
from menu_optimizer.schemas import MenuFileReference
from menu_optimizer.services import menu_ingest_service
from menu_optimizer.services.menu_ingest_service import (
    MenuExtractionError,
    MenuIngestService,
    build_menu_document,
    check_storage_url,
    detect_upload_meta,
    download_menu_file,
    menu_document_to_items,
    parse_menu_json,
    parse_price,
)

STORAGE_URL = "https://project.supabase.test"
MENU_PDF_URL = f"{STORAGE_URL}/storage/v1/object/sign/menus/menu.pdf?token=abc"
MENU_PNG_URL = f"{STORAGE_URL}/storage/v1/object/sign/menus/menu.png?token=abc"

MENU_DOCUMENT = {
    "categories": [
        {
            "name": "Entrées",
            "items": [
                {"name": "Velouté", "description": "Potimarron", "price": "8,50 €", "tags": ["Végétarien"]},
                {"name": "  ", "price": 3},
            ],
        },
        {
            "name": "",
            "items": [
                {
                    "name": "Tartare",
                    "price": 19,
                    "ingredients": ["boeuf", " câpres "],
                    "tags": [{"label": "Sans gluten"}],
                },
            ],
        },
    ]
}


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(12, 12.0), ("12,50 €", 12.5), ("9.90", 9.9), ("prix du marché", 0.0), (None, 0.0), (-4, 0.0)],
)
def test_parse_price(raw, expected) -> None:
    assert parse_price(raw) == expected


def test_menu_document_to_items() -> None:
    items = menu_document_to_items("resto-1", MENU_DOCUMENT)

    assert [item.name for item in items] == ["Velouté", "Tartare"]
    veloute, tartare = items
    assert veloute.price == 8.5
    assert veloute.category == "Entrées"
    assert veloute.dietary_tags == ["vegetarien"]
    assert tartare.category == "Autres"
    assert tartare.ingredients == ["boeuf", "câpres"]
    assert tartare.dietary_tags == ["sans gluten"]
    assert all(item.restaurant_id == "resto-1" for item in items)


def test_detect_upload_meta() -> None:
    assert detect_upload_meta("menu.pdf", None).kind == "pdf"
    assert detect_upload_meta("menu.bin", "image/png").kind == "image"
    assert detect_upload_meta("carte.JPG", "application/octet-stream").mime_type == "image/jpeg"
    with pytest.raises(MenuExtractionError):
        detect_upload_meta("menu.docx", None)


def test_parse_menu_json_requires_categories() -> None:
    with pytest.raises(MenuExtractionError):
        parse_menu_json('{"categories": []}')


@pytest.mark.asyncio
async def test_build_menu_document_rejects_empty_file() -> None:
    with pytest.raises(MenuExtractionError):
        await build_menu_document(filename="menu.pdf", content_type="application/pdf", data=b"")


@pytest.mark.asyncio
async def test_download_menu_file_rejects_expired_link() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(403))
    reference = MenuFileReference(file_name="menu.pdf", download_url=MENU_PDF_URL)

    with pytest.raises(MenuExtractionError):
        await download_menu_file(reference, storage_url=STORAGE_URL, transport=transport)


@pytest.mark.asyncio
async def test_parse_and_store_batch_creates_items(monkeypatch, repos: Repositories, store: InMemoryRecordStore) -> None:
    captured = {}

    async def fake_build_menu_document(*, filename, content_type, data):
        captured.update(filename=filename, content_type=content_type, data=data)
        return MENU_DOCUMENT

    monkeypatch.setattr(menu_ingest_service, "build_menu_document", fake_build_menu_document)
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"%PDF-1.4 menu"))
    service = MenuIngestService(menu_items=repos.menu_items, storage_url=STORAGE_URL, transport=transport)
    reference = MenuFileReference(
        file_name="menu.pdf",
        download_url=MENU_PDF_URL,
        content_type="application/pdf",
    )

    created = await service.parse_and_store("resto-1", reference)

    assert captured == {"filename": "menu.pdf", "content_type": "application/pdf", "data": b"%PDF-1.4 menu"}
    assert len(created) == 2
    assert store.count("batch_write", MENU_ITEMS_TABLE) == 1
    assert {row["name"] for row in store.rows(MENU_ITEMS_TABLE)} == {"Velouté", "Tartare"}


@pytest.mark.asyncio
async def test_parse_and_store_without_items_fails(monkeypatch, repos: Repositories) -> None:
    async def fake_build_menu_document(*, filename, content_type, data):
        return {"categories": [{"name": "Vide", "items": []}]}

    monkeypatch.setattr(menu_ingest_service, "build_menu_document", fake_build_menu_document)
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"data"))
    service = MenuIngestService(menu_items=repos.menu_items, storage_url=STORAGE_URL, transport=transport)

    with pytest.raises(MenuExtractionError):
        await service.parse_and_store(
            "resto-1",
            MenuFileReference(file_name="menu.png", download_url=MENU_PNG_URL),
        )


def test_check_storage_url_accepts_storage_objects() -> None:
    url = check_storage_url(
        "https://project.supabase.test/storage/v1/object/sign/menus/carte.pdf?token=abc",
        STORAGE_URL,
    )

    assert url.host == "project.supabase.test"


@pytest.mark.parametrize(
    "download_url",
    [
        "http://169.254.169.254/latest/meta-data/",
        "http://project.supabase.test/storage/v1/object/sign/menus/carte.pdf",
        "https://project.supabase.test.evil.test/storage/v1/object/carte.pdf",
        "https://project.supabase.test:8443/storage/v1/object/carte.pdf",
        "https://project.supabase.test/rest/v1/dev_restaurants",
        "file:///etc/passwd",
        "pas une url",
    ],
)
def test_check_storage_url_rejects_other_targets(download_url) -> None:
    with pytest.raises(MenuExtractionError):
        check_storage_url(download_url, STORAGE_URL)


@pytest.mark.asyncio
async def test_download_outside_storage_sends_no_request() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"secret")

    reference = MenuFileReference(file_name="menu.pdf", download_url="http://10.0.0.5/admin")

    with pytest.raises(MenuExtractionError):
        await download_menu_file(reference, storage_url=STORAGE_URL, transport=httpx.MockTransport(handler))

    assert seen == []
