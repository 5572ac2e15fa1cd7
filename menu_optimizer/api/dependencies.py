"""FastAPI dependencies resolving the caller, its restaurant and the services."""

from __future__ import annotations

from typing import Optional, Tuple

from fastapi import Depends, Header, HTTPException

from menu_optimizer.config.supabase_client import SUPABASE_SERVICE_ROLE_KEY
from menu_optimizer.repositories.analytics import AnalyticsRepository
from menu_optimizer.repositories.candidates import RevisionCandidateRepository, SuggestionCandidateRepository
from menu_optimizer.repositories.menu_items import MenuItemRepository
from menu_optimizer.repositories.restaurants import RestaurantRepository
from menu_optimizer.repositories.snapshots import (
    CompetitorDishSnapshotRepository,
    DemographicSnapshotRepository,
)
from menu_optimizer.services.auth_utils import get_user_id
from menu_optimizer.services.content_provider import ContentProvider, OpenAIContentProvider
from menu_optimizer.services.enhancement_service import EnhancementService
from menu_optimizer.services.market_data_service import MarketDataClient, MarketDataProvider, TasteProfileAnalyzer
from menu_optimizer.services.menu_ingest_service import MenuIngestService
from menu_optimizer.services.optimization_service import OptimizationService
from menu_optimizer.services.postgrest_client import (
    PostgrestRecordStore,
    extract_bearer_token,
    raise_store_error,
)
from menu_optimizer.services.record_store import RecordStore, RecordStoreError
from menu_optimizer.services.restaurant_service import RestaurantService
from menu_optimizer.services.review_service import ReviewService
from menu_optimizer.services.taste_profile_service import TasteProfileService


async def get_access_token(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> str:
    """Extract the Supabase bearer token from the Authorization header."""

    return extract_bearer_token(authorization)


async def get_current_user_id(access_token: str = Depends(get_access_token)) -> str:
    return get_user_id(access_token)


def get_user_record_store(access_token: str = Depends(get_access_token)) -> RecordStore:
    """Store acting with the caller's own token, for requests made before a restaurant exists."""

    return PostgrestRecordStore(access_token)


def _resolve_postgrest_credentials(access_token: str) -> Tuple[str, Optional[str]]:
    """Return the token/api key pair to use once the caller has been authorized."""

    if SUPABASE_SERVICE_ROLE_KEY:
        return SUPABASE_SERVICE_ROLE_KEY, SUPABASE_SERVICE_ROLE_KEY
    return access_token, None


async def get_current_restaurant_id(
    x_restaurant_id: Optional[str] = Header(default=None, alias="X-Restaurant-Id"),
    access_token: str = Depends(get_access_token),
) -> str:
    """Resolve the restaurant the caller is acting for and check they own it.

    Without ``X-Restaurant-Id`` the caller's own restaurant is used.
    """

    user_id = get_user_id(access_token)
    restaurants = RestaurantRepository(PostgrestRecordStore(access_token))
    try:
        if x_restaurant_id:
            restaurant = await restaurants.get_by_id(x_restaurant_id)
        else:
            restaurant = await restaurants.get_by_owner_id(user_id)
    except RecordStoreError as exc:
        raise_store_error(exc, context="restaurant access check")

    if restaurant is None or not restaurant.restaurant_id:
        raise HTTPException(status_code=404, detail="Restaurant introuvable.")
    if restaurant.owner_id != user_id:
        raise HTTPException(status_code=403, detail="Accès refusé à ce restaurant.")
    return restaurant.restaurant_id


async def get_record_store(
    restaurant_id: str = Depends(get_current_restaurant_id),
    access_token: str = Depends(get_access_token),
) -> RecordStore:
    db_token, api_key = _resolve_postgrest_credentials(access_token)
    return PostgrestRecordStore(db_token, api_key=api_key)


def get_content_provider() -> ContentProvider:
    return OpenAIContentProvider()


def get_market_data_provider() -> MarketDataProvider:
    return MarketDataClient()


def get_taste_profile_analyzer() -> TasteProfileAnalyzer:
    return MarketDataClient()


def get_menu_item_repository(store: RecordStore = Depends(get_record_store)) -> MenuItemRepository:
    return MenuItemRepository(store)


def get_analytics_repository(store: RecordStore = Depends(get_record_store)) -> AnalyticsRepository:
    return AnalyticsRepository(store)


def get_restaurant_repository(store: RecordStore = Depends(get_record_store)) -> RestaurantRepository:
    return RestaurantRepository(store)


def get_restaurant_setup_service(store: RecordStore = Depends(get_user_record_store)) -> RestaurantService:
    return RestaurantService(restaurants=RestaurantRepository(store))


def get_restaurant_service(store: RecordStore = Depends(get_record_store)) -> RestaurantService:
    return RestaurantService(restaurants=RestaurantRepository(store))


def get_demographic_snapshot_repository(
    store: RecordStore = Depends(get_record_store),
) -> DemographicSnapshotRepository:
    return DemographicSnapshotRepository(store)


def get_competitor_dish_snapshot_repository(
    store: RecordStore = Depends(get_record_store),
) -> CompetitorDishSnapshotRepository:
    return CompetitorDishSnapshotRepository(store)


def get_review_service(store: RecordStore = Depends(get_record_store)) -> ReviewService:
    return ReviewService(
        menu_items=MenuItemRepository(store),
        revisions=RevisionCandidateRepository(store),
        suggestions=SuggestionCandidateRepository(store),
    )


def get_optimization_service(
    store: RecordStore = Depends(get_record_store),
    provider: ContentProvider = Depends(get_content_provider),
) -> OptimizationService:
    return OptimizationService(
        menu_items=MenuItemRepository(store),
        revisions=RevisionCandidateRepository(store),
        suggestions=SuggestionCandidateRepository(store),
        demographics=DemographicSnapshotRepository(store),
        competitor_dishes=CompetitorDishSnapshotRepository(store),
        restaurants=RestaurantRepository(store),
        provider=provider,
    )


def get_enhancement_service(
    store: RecordStore = Depends(get_record_store),
    provider: ContentProvider = Depends(get_content_provider),
) -> EnhancementService:
    return EnhancementService(menu_items=MenuItemRepository(store), provider=provider)


def get_taste_profile_service(
    store: RecordStore = Depends(get_record_store),
    analyzer: TasteProfileAnalyzer = Depends(get_taste_profile_analyzer),
) -> TasteProfileService:
    return TasteProfileService(menu_items=MenuItemRepository(store), analyzer=analyzer)


def get_menu_ingest_service(store: RecordStore = Depends(get_record_store)) -> MenuIngestService:
    return MenuIngestService(menu_items=MenuItemRepository(store))


__all__ = [
    "get_access_token",
    "get_current_user_id",
    "get_user_record_store",
    "get_current_restaurant_id",
    "get_record_store",
    "get_content_provider",
    "get_market_data_provider",
    "get_taste_profile_analyzer",
    "get_menu_item_repository",
    "get_analytics_repository",
    "get_restaurant_repository",
    "get_restaurant_setup_service",
    "get_restaurant_service",
    "get_demographic_snapshot_repository",
    "get_competitor_dish_snapshot_repository",
    "get_review_service",
    "get_optimization_service",
    "get_enhancement_service",
    "get_menu_ingest_service",
    "get_taste_profile_service",
]
