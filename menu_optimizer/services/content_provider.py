"""Content generation for menu optimization, backed by OpenAI chat completions.

The orchestrator only depends on the ``ContentProvider`` protocol; the prompt
builders and response parsers below are pure functions so they can be tested
without a network.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Tuple

from openai import OpenAIError

from menu_optimizer.config.openai_client import OPTIMIZER_MODEL, get_openai_client
from menu_optimizer.schemas import (
    CompetitorDish,
    CompetitorDishSnapshot,
    DemographicSnapshot,
    MenuItem,
    OptimizationCriteria,
    Restaurant,
)
from menu_optimizer.services.llm_json import LLMResponseError, parse_json_object, preview_text

logger = logging.getLogger(__name__)

REVISION_MAX_TOKENS = 500
SUGGESTION_MAX_TOKENS = 2000
ENHANCEMENT_MAX_TOKENS = 200
DEFAULT_SUGGESTION_PRICE = 12.99
MAX_EXISTING_NAMES_IN_PROMPT = 20

REVISION_SYSTEM_PROMPT = (
    "Tu es un consultant en carte de restaurant. Tu optimises le nom et la description d'un plat "
    "pour la clientèle décrite, sans trahir le plat d'origine. "
    "Réponds UNIQUEMENT avec un JSON valide de la forme "
    "{\"optimized_name\": str, \"optimized_description\": str, \"reason\": str}."
)

SUGGESTION_SYSTEM_PROMPT = (
    "Tu es un consultant en carte de restaurant. Tu proposes de nouveaux plats inspirés des "
    "spécialités populaires de restaurants similaires, adaptés au style et au niveau de prix du restaurant. "
    "Réponds UNIQUEMENT avec un JSON valide de la forme "
    "{\"suggestions\": [{\"name\": str, \"description\": str, \"estimated_price\": float, "
    "\"category\": str, \"ingredients\": [str], \"dietary_tags\": [str], \"based_on_dish\": str}]}."
)

ENHANCEMENT_SYSTEM_PROMPT = (
    "Tu es un rédacteur culinaire. Tu améliores la description d'un plat pour la rendre plus appétissante : "
    "langage sensoriel, ingrédients et préparation mis en valeur, 2 à 3 phrases, sans inventer d'ingrédient "
    "et en conservant les informations diététiques. "
    "Réponds UNIQUEMENT avec un JSON valide de la forme {\"description\": str}."
)


class ContentGenerationError(RuntimeError):
    """Raised when the language model cannot produce usable content."""


@dataclass(frozen=True)
class RevisionProposal:
    item_id: str
    proposed_name: str
    proposed_description: str
    rationale: str
    demographic_insights: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SuggestionProposal:
    name: str
    description: str
    estimated_price: float
    category: str
    ingredients: Tuple[str, ...] = ()
    dietary_tags: Tuple[str, ...] = ()
    based_on_dish: Optional[str] = None


class ContentProvider(Protocol):
    async def generate_revisions(
        self,
        items: Sequence[MenuItem],
        demographics: Optional[DemographicSnapshot],
        competitor_dishes: Optional[CompetitorDishSnapshot],
        criteria: OptimizationCriteria,
    ) -> List[RevisionProposal]:
        ...

    async def generate_suggestions(
        self,
        restaurant: Optional[Restaurant],
        competitor_dishes: CompetitorDishSnapshot,
        existing_items: Sequence[MenuItem],
        criteria: OptimizationCriteria,
    ) -> List[SuggestionProposal]:
        ...

    async def generate_enhanced_description(
        self,
        item: MenuItem,
        *,
        style: Optional[str] = None,
        target_audience: Optional[str] = None,
    ) -> str:
        ...


def _unique(values: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def build_demographic_insights(
    snapshot: Optional[DemographicSnapshot],
    segments: Sequence[str] = (),
) -> List[str]:
    """Summarise the selected demographic segments as short insight lines.

    ``segments`` names age ranges and interests; when empty the whole snapshot
    is used. The most frequent dining pattern is always included as context.
    """

    if snapshot is None:
        return []

    insights: List[str] = []
    selected = set(segments)

    age_groups = [group for group in snapshot.age_groups if not selected or group.age_range in selected]
    if age_groups:
        labels = [f"{group.age_range} ({group.percentage:g}%)" for group in age_groups]
        insights.append(f"Tranches d'âge ciblées : {', '.join(labels)}")
        preferences = _unique(pref for group in age_groups for pref in group.preferences)
        if preferences:
            insights.append(f"Préférences de ces tranches d'âge : {', '.join(preferences)}")

    interests = [interest for interest in snapshot.interests if not selected or interest in selected]
    if interests:
        insights.append(f"Centres d'intérêt ciblés : {', '.join(interests)}")

    if snapshot.dining_patterns:
        top_pattern = max(snapshot.dining_patterns, key=lambda pattern: pattern.frequency)
        insights.append(
            f"Habitude de consommation principale : {top_pattern.pattern} ({top_pattern.frequency:g}% de fréquence)"
        )
        if top_pattern.time_of_day:
            insights.append(f"Moments de consommation : {', '.join(top_pattern.time_of_day)}")

    return insights


def prioritize_dishes(dishes: Sequence[CompetitorDish], limit: int) -> List[CompetitorDish]:
    """Most popular dishes first, ties broken by how many restaurants serve them."""

    ranked = sorted(dishes, key=lambda dish: (dish.popularity, dish.restaurant_count), reverse=True)
    return ranked[: max(limit, 0)]


def select_competitor_dishes(
    snapshot: Optional[CompetitorDishSnapshot],
    names: Sequence[str],
) -> List[CompetitorDish]:
    if snapshot is None or not names:
        return []
    wanted = {name.lower() for name in names}
    return [dish for dish in snapshot.dishes if dish.dish_name.lower() in wanted]


def build_revision_prompt(
    item: MenuItem,
    insights: Sequence[str],
    inspiration: Sequence[CompetitorDish],
    criteria: OptimizationCriteria,
) -> str:
    style = criteria.style or "attractif"
    audience = criteria.target_audience or "la clientèle principale du restaurant"
    cuisine = criteria.cuisine_hint or "le style de cuisine du restaurant"

    lines = [
        f"Cuisine : {cuisine}",
        "",
        "PLAT À OPTIMISER :",
        f"Nom : {item.name}",
        f"Description : {item.description}",
        f"Catégorie : {item.category}",
        f"Prix : {item.price:.2f}",
    ]
    if item.ingredients:
        lines.append(f"Ingrédients : {', '.join(item.ingredients)}")
    if item.dietary_tags:
        lines.append(f"Régimes : {', '.join(item.dietary_tags)}")

    lines.extend(["", "CLIENTÈLE :"])
    lines.extend(insights or ["Aucune donnée démographique disponible."])

    if inspiration:
        lines.extend(["", "SPÉCIALITÉS POPULAIRES DE RESTAURANTS SIMILAIRES :"])
        lines.extend(
            f"- {dish.dish_name} (popularité {dish.popularity:g}, servi par {dish.restaurant_count} restaurants)"
            for dish in inspiration
        )

    lines.extend(
        [
            "",
            f"Style souhaité : {style}",
            f"Public cible : {audience}",
            "Garde l'essence du plat, rends le nom et la description plus attirants pour cette clientèle "
            "et explique brièvement pourquoi dans 'reason'.",
        ]
    )
    return "\n".join(lines)


def build_suggestion_prompt(
    restaurant: Optional[Restaurant],
    dishes: Sequence[CompetitorDish],
    existing_names: Sequence[str],
    criteria: OptimizationCriteria,
) -> str:
    lines = ["PROFIL DU RESTAURANT :"]
    if restaurant is not None:
        lines.append(f"Nom : {restaurant.name}")
        if restaurant.city or restaurant.state:
            lines.append(f"Localisation : {restaurant.city}, {restaurant.state}".rstrip(", "))
        if restaurant.price_level:
            lines.append(f"Niveau de prix : {restaurant.price_level} (1 = économique, 4 = luxe)")
    cuisine = criteria.cuisine_hint or (restaurant.cuisine if restaurant else None)
    if cuisine:
        lines.append(f"Cuisine : {cuisine}")
    if criteria.style:
        lines.append(f"Style souhaité : {criteria.style}")

    lines.extend(["", "SPÉCIALITÉS POPULAIRES DE RESTAURANTS SIMILAIRES :"])
    lines.extend(
        f"{index}. {dish.dish_name} (servi par {dish.restaurant_count} restaurants, popularité {dish.popularity:g})"
        for index, dish in enumerate(dishes, start=1)
    )

    if existing_names:
        shown = ", ".join(existing_names[:MAX_EXISTING_NAMES_IN_PROMPT])
        suffix = "..." if len(existing_names) > MAX_EXISTING_NAMES_IN_PROMPT else ""
        lines.extend(["", f"PLATS DÉJÀ À LA CARTE (à ne pas dupliquer) : {shown}{suffix}"])
    if criteria.exclude_categories:
        lines.append(f"CATÉGORIES À EXCLURE : {', '.join(criteria.exclude_categories)}")

    lines.extend(
        [
            "",
            f"Propose {criteria.max_suggestions} nouveaux plats réalisables, avec un prix réaliste, "
            "des ingrédients et des tags diététiques, en indiquant dans 'based_on_dish' la spécialité d'origine.",
        ]
    )
    return "\n".join(lines)


def build_enhancement_prompt(
    item: MenuItem,
    *,
    style: Optional[str] = None,
    target_audience: Optional[str] = None,
) -> str:
    lines = [
        f"Nom : {item.name}",
        f"Catégorie : {item.category}",
        f"Description d'origine : {item.description}",
        f"Prix : {item.price:.2f}",
    ]
    if item.ingredients:
        lines.append(f"Ingrédients : {', '.join(item.ingredients)}")
    if item.dietary_tags:
        lines.append(f"Informations diététiques : {', '.join(item.dietary_tags)}")
    profile = item.taste_profile or {}
    flavors = profile.get("flavors")
    if isinstance(flavors, dict) and flavors:
        top_flavors = sorted(flavors, key=lambda name: flavors[name], reverse=True)[:3]
        lines.append(f"Saveurs dominantes : {', '.join(top_flavors)}")
    if profile.get("summary"):
        lines.append(f"Profil gustatif : {profile['summary']}")
    if target_audience:
        lines.append(f"Public cible : {target_audience}")
    if style:
        lines.append(f"Style souhaité : {style}")
    return "\n".join(lines)


def _string_list(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(entry).strip() for entry in value if str(entry).strip())


def _to_price(value: Any) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SUGGESTION_PRICE
    return price if price > 0 else DEFAULT_SUGGESTION_PRICE


def parse_revision_response(
    raw_response: str,
    item: MenuItem,
    insights: Sequence[str],
) -> RevisionProposal:
    """Turn the model output into a proposal, keeping the original text for missing fields."""

    payload = parse_json_object(raw_response)
    proposed_name = str(payload.get("optimized_name") or "").strip() or item.name
    proposed_description = str(payload.get("optimized_description") or "").strip() or item.description
    rationale = str(payload.get("reason") or "").strip() or "Adapté aux préférences de la clientèle."
    return RevisionProposal(
        item_id=item.item_id or "",
        proposed_name=proposed_name,
        proposed_description=proposed_description,
        rationale=rationale,
        demographic_insights=tuple(insights),
    )


def parse_suggestion_response(
    raw_response: str,
    *,
    limit: int,
    existing_names: Sequence[str] = (),
) -> List[SuggestionProposal]:
    payload = parse_json_object(raw_response)
    entries = payload.get("suggestions")
    if not isinstance(entries, list):
        raise LLMResponseError("Le JSON généré ne contient aucune suggestion.")

    taken = {name.lower() for name in existing_names}
    proposals: List[SuggestionProposal] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name") or "").strip()
        if not name or name.lower() in taken:
            continue
        taken.add(name.lower())
        based_on = str(entry.get("based_on_dish") or "").strip() or None
        proposals.append(
            SuggestionProposal(
                name=name,
                description=str(entry.get("description") or "").strip(),
                estimated_price=_to_price(entry.get("estimated_price")),
                category=str(entry.get("category") or "").strip() or "plat",
                ingredients=_string_list(entry.get("ingredients")),
                dietary_tags=_string_list(entry.get("dietary_tags")),
                based_on_dish=based_on,
            )
        )
        if len(proposals) >= limit:
            break
    return proposals


class OpenAIContentProvider:
    """``ContentProvider`` calling the chat completions API in a worker thread."""

    def __init__(self, model: Optional[str] = None):
        self.model = model or OPTIMIZER_MODEL

    def _complete(self, system_prompt: str, prompt: str, *, max_tokens: int, temperature: float) -> str:
        client = get_openai_client()
        completion = client.chat.completions.create(
            model=self.model,
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
        )
        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""

    async def _request(self, system_prompt: str, prompt: str, *, max_tokens: int, temperature: float) -> str:
        try:
            return await asyncio.to_thread(
                self._complete,
                system_prompt,
                prompt,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except OpenAIError as exc:
            logger.error("Erreur OpenAI lors de la génération de contenu: %s", exc, exc_info=True)
            raise ContentGenerationError("Le service de génération est indisponible.") from exc
        except RuntimeError as exc:
            raise ContentGenerationError(str(exc)) from exc

    async def generate_revisions(
        self,
        items: Sequence[MenuItem],
        demographics: Optional[DemographicSnapshot],
        competitor_dishes: Optional[CompetitorDishSnapshot],
        criteria: OptimizationCriteria,
    ) -> List[RevisionProposal]:
        insights = build_demographic_insights(demographics, criteria.demographic_segments)
        inspiration = select_competitor_dishes(competitor_dishes, criteria.competitor_dishes)
        proposals: List[RevisionProposal] = []
        for item in items:
            prompt = build_revision_prompt(item, insights, inspiration, criteria)
            raw = await self._request(
                REVISION_SYSTEM_PROMPT,
                prompt,
                max_tokens=REVISION_MAX_TOKENS,
                temperature=0.7,
            )
            try:
                proposals.append(parse_revision_response(raw, item, insights))
            except LLMResponseError as exc:
                logger.warning(
                    "Revision response unusable",
                    extra={"item_id": item.item_id, "preview": preview_text(raw)},
                )
                raise ContentGenerationError(str(exc)) from exc
        return proposals

    async def generate_suggestions(
        self,
        restaurant: Optional[Restaurant],
        competitor_dishes: CompetitorDishSnapshot,
        existing_items: Sequence[MenuItem],
        criteria: OptimizationCriteria,
    ) -> List[SuggestionProposal]:
        dishes = list(competitor_dishes.dishes)
        if criteria.competitor_dishes:
            dishes = select_competitor_dishes(competitor_dishes, criteria.competitor_dishes) or dishes
        prioritized = prioritize_dishes(dishes, criteria.max_suggestions * 2)
        existing_names = [item.name.lower() for item in existing_items]
        prompt = build_suggestion_prompt(restaurant, prioritized, existing_names, criteria)
        raw = await self._request(
            SUGGESTION_SYSTEM_PROMPT,
            prompt,
            max_tokens=SUGGESTION_MAX_TOKENS,
            temperature=0.8,
        )
        try:
            return parse_suggestion_response(raw, limit=criteria.max_suggestions, existing_names=existing_names)
        except LLMResponseError as exc:
            logger.warning("Suggestion response unusable", extra={"preview": preview_text(raw)})
            raise ContentGenerationError(str(exc)) from exc

    async def generate_enhanced_description(
        self,
        item: MenuItem,
        *,
        style: Optional[str] = None,
        target_audience: Optional[str] = None,
    ) -> str:
        prompt = build_enhancement_prompt(item, style=style, target_audience=target_audience)
        raw = await self._request(
            ENHANCEMENT_SYSTEM_PROMPT,
            prompt,
            max_tokens=ENHANCEMENT_MAX_TOKENS,
            temperature=0.7,
        )
        try:
            description = str(parse_json_object(raw).get("description") or "").strip()
        except LLMResponseError as exc:
            raise ContentGenerationError(str(exc)) from exc
        if not description:
            raise ContentGenerationError("L'IA n'a renvoyé aucune description.")
        return description


__all__ = [
    "ContentGenerationError",
    "ContentProvider",
    "OpenAIContentProvider",
    "RevisionProposal",
    "SuggestionProposal",
    "build_demographic_insights",
    "prioritize_dishes",
    "select_competitor_dishes",
    "build_revision_prompt",
    "build_suggestion_prompt",
    "build_enhancement_prompt",
    "parse_revision_response",
    "parse_suggestion_response",
]
