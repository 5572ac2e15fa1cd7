"""Demographic and competitor data pulled from the taste/insights API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

import httpx

from menu_optimizer.config.settings import (
    MARKET_DATA_API_KEY,
    MARKET_DATA_API_URL,
    MARKET_DATA_TIMEOUT_SECONDS,
)
from menu_optimizer.repositories.snapshots import (
    CompetitorDishSnapshotRepository,
    DemographicSnapshotRepository,
)
from menu_optimizer.schemas import (
    AgeGroup,
    CompetitorDish,
    CompetitorDishSnapshot,
    DemographicSnapshot,
    DiningPattern,
    Restaurant,
    SimilarRestaurant,
)

logger = logging.getLogger(__name__)

INSIGHTS_PATH = "/v2/insights"
TASTE_PROFILE_PATH = "/taste-profiles/analyze"
SIMILAR_RESTAURANT_COUNT = 10
DEFAULT_MIN_RATING = 4.0


class MarketDataError(RuntimeError):
    """Raised when market data cannot be fetched or is unusable."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UnlinkedRestaurantError(MarketDataError):
    """Raised when the restaurant has no reference entity to query market data with."""


class MarketDataProvider(Protocol):
    async def fetch_demographics(self, entity_id: str) -> Dict[str, Any]:
        ...

    async def fetch_similar_restaurants(
        self,
        entity_id: str,
        *,
        location: str,
        cuisine: Optional[str],
        min_rating: float,
    ) -> List[Dict[str, Any]]:
        ...


class TasteProfileAnalyzer(Protocol):
    async def analyze_taste_profile(self, item: Mapping[str, Any]) -> Dict[str, Any]:
        ...


class MarketDataClient:
    """Thin async client for the insights endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        *,
        timeout: float = MARKET_DATA_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or MARKET_DATA_API_URL).rstrip("/")
        self.api_key = api_key or MARKET_DATA_API_KEY
        self.timeout = timeout
        self.transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not self.api_key:
            raise MarketDataError("MARKET_DATA_API_KEY manquante dans le fichier .env")

        headers = {"x-api-key": self.api_key, "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(
                    method,
                    path,
                    params=dict(params) if params else None,
                    json=dict(payload) if payload is not None else None,
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            logger.error("Market data API unreachable: %s", exc)
            raise MarketDataError("Impossible de contacter le service de données marché.") from exc

        if response.status_code >= 400:
            logger.error(
                "Market data API failed",
                extra={"status_code": response.status_code, "path": path},
            )
            raise MarketDataError(
                "Le service de données marché a refusé la requête.",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MarketDataError("Réponse invalide du service de données marché.") from exc
        if not isinstance(data, dict):
            raise MarketDataError("Réponse invalide du service de données marché.")
        return data

    async def fetch_demographics(self, entity_id: str) -> Dict[str, Any]:
        return await self._request(
            "GET",
            INSIGHTS_PATH,
            params={
                "filter.type": "urn:demographics",
                "signal.interests.entities": entity_id,
            },
        )

    async def fetch_similar_restaurants(
        self,
        entity_id: str,
        *,
        location: str,
        cuisine: Optional[str],
        min_rating: float,
    ) -> List[Dict[str, Any]]:
        params = {
            "filter.type": "urn:entity:place",
            "filter.location.query": location,
            "signal.interests.entities": entity_id,
            "count": str(SIMILAR_RESTAURANT_COUNT),
            "filter.external.tripadvisor.rating.min": str(min_rating),
        }
        if cuisine:
            params["filter.tags"] = f"urn:tag:genre:place:restaurant:{cuisine.lower()}"
        payload = await self._request("GET", INSIGHTS_PATH, params=params)
        entities = (payload.get("results") or {}).get("entities") or []
        return [entity for entity in entities if isinstance(entity, dict)]

    async def analyze_taste_profile(self, item: Mapping[str, Any]) -> Dict[str, Any]:
        """Taste attributes, dietary compatibility and pairings for one dish."""

        return await self._request("POST", TASTE_PROFILE_PATH, payload=item)


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_demographics(
    restaurant_id: str,
    entity_id: Optional[str],
    payload: Mapping[str, Any],
) -> DemographicSnapshot:
    data = payload.get("data") or payload.get("results") or {}
    demographics = [entry for entry in data.get("demographics") or [] if isinstance(entry, dict)]
    insights = [entry for entry in data.get("insights") or [] if isinstance(entry, dict)]

    age_groups = [
        AgeGroup(
            age_range=str(entry.get("value") or ""),
            percentage=_to_float(entry.get("percentage")),
            preferences=[str(pref) for pref in entry.get("preferences") or []],
        )
        for entry in demographics
        if (entry.get("type") == "age_group" or entry.get("category") == "age") and entry.get("value")
    ]
    interests = [
        str(entry["value"])
        for entry in demographics
        if (entry.get("type") == "interest" or entry.get("category") == "interests") and entry.get("value")
    ]
    dining_patterns = [
        DiningPattern(
            pattern=str(entry.get("value") or ""),
            frequency=_to_float(entry.get("frequency")),
            time_of_day=[str(slot) for slot in entry.get("time_of_day") or []],
        )
        for entry in insights
        if (entry.get("type") == "dining_pattern" or entry.get("category") == "dining") and entry.get("value")
    ]
    return DemographicSnapshot(
        restaurant_id=restaurant_id,
        entity_id=entity_id,
        age_groups=age_groups,
        interests=interests,
        dining_patterns=dining_patterns,
    )


def _dish_tag_id(dish: Mapping[str, Any]) -> str:
    tag_id = dish.get("tag_id")
    if tag_id:
        return str(tag_id)
    slug = "_".join(str(dish.get("name") or "").lower().split())
    return f"urn:tag:specialty_dish:place:{slug}"


def normalize_similar_restaurants(entities: Sequence[Mapping[str, Any]]) -> List[SimilarRestaurant]:
    restaurants: List[SimilarRestaurant] = []
    for entity in entities:
        properties = entity.get("properties") or {}
        dishes = [dish for dish in properties.get("specialty_dishes") or [] if isinstance(dish, dict)]
        price_level = properties.get("price_level")
        restaurants.append(
            SimilarRestaurant(
                name=str(entity.get("name") or ""),
                entity_id=str(entity.get("entity_id") or entity.get("id") or ""),
                address=str(properties.get("address") or ""),
                business_rating=_to_float(properties.get("business_rating")),
                price_level=int(price_level) if isinstance(price_level, (int, float)) else None,
                specialty_dishes=[str(dish["name"]) for dish in dishes if dish.get("name")],
            )
        )
    return restaurants


def aggregate_specialty_dishes(entities: Sequence[Mapping[str, Any]]) -> List[CompetitorDish]:
    """Count how many similar restaurants list each specialty dish."""

    dishes: Dict[str, CompetitorDish] = {}
    for entity in entities:
        properties = entity.get("properties") or {}
        for raw in properties.get("specialty_dishes") or []:
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            tag_id = _dish_tag_id(raw)
            existing = dishes.get(tag_id)
            if existing is None:
                dishes[tag_id] = CompetitorDish(
                    dish_name=str(raw["name"]),
                    tag_id=tag_id,
                    restaurant_count=1,
                    popularity=1.0,
                )
            else:
                existing.restaurant_count += 1
                existing.popularity += 1.0
    return sorted(dishes.values(), key=lambda dish: (dish.popularity, dish.restaurant_count), reverse=True)


async def refresh_market_data(
    restaurant: Restaurant,
    *,
    provider: MarketDataProvider,
    demographics: DemographicSnapshotRepository,
    competitor_dishes: CompetitorDishSnapshotRepository,
    min_rating: float = DEFAULT_MIN_RATING,
) -> Tuple[DemographicSnapshot, CompetitorDishSnapshot]:
    """Fetch both datasets for ``restaurant`` and replace its cached snapshots."""

    entity_id = restaurant.external_entity_id
    if not entity_id or not restaurant.restaurant_id:
        raise UnlinkedRestaurantError("Le restaurant n'est pas encore associé à un établissement de référence.")

    location = ", ".join(part for part in (restaurant.city, restaurant.state) if part)
    demographics_payload, similar_entities = await asyncio.gather(
        provider.fetch_demographics(entity_id),
        provider.fetch_similar_restaurants(
            entity_id,
            location=location,
            cuisine=restaurant.cuisine,
            min_rating=min_rating,
        ),
    )

    demographic_snapshot = await demographics.create_or_update(
        normalize_demographics(restaurant.restaurant_id, entity_id, demographics_payload)
    )
    competitor_snapshot = await competitor_dishes.create_or_update(
        CompetitorDishSnapshot(
            restaurant_id=restaurant.restaurant_id,
            entity_id=entity_id,
            similar_restaurants=normalize_similar_restaurants(similar_entities),
            dishes=aggregate_specialty_dishes(similar_entities),
            min_rating_filter=min_rating,
        )
    )
    logger.info(
        "Market data refreshed",
        extra={
            "restaurant_id": restaurant.restaurant_id,
            "age_groups": len(demographic_snapshot.age_groups),
            "dishes": len(competitor_snapshot.dishes),
        },
    )
    return demographic_snapshot, competitor_snapshot


__all__ = [
    "MarketDataError",
    "UnlinkedRestaurantError",
    "MarketDataProvider",
    "TasteProfileAnalyzer",
    "MarketDataClient",
    "normalize_demographics",
    "normalize_similar_restaurants",
    "aggregate_specialty_dishes",
    "refresh_market_data",
]
