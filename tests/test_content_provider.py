import json

import pytest

from menu_optimizer.schemas import (
    AgeGroup,
    CompetitorDish,
    CompetitorDishSnapshot,
    DemographicSnapshot,
    DiningPattern,
    MenuItem,
    OptimizationCriteria,
    Restaurant,
)
from menu_optimizer.services.content_provider import (
    DEFAULT_SUGGESTION_PRICE,
    build_demographic_insights,
    build_enhancement_prompt,
    build_suggestion_prompt,
    parse_revision_response,
    parse_suggestion_response,
    prioritize_dishes,
    select_competitor_dishes,
)
from menu_optimizer.services.llm_json import LLMResponseError, TruncatedResponse, parse_json_object


def _snapshot() -> DemographicSnapshot:
    return DemographicSnapshot(
        restaurant_id="resto-1",
        age_groups=[
            AgeGroup(age_range="25-34", percentage=40, preferences=["healthy", "street food"]),
            AgeGroup(age_range="55+", percentage=15, preferences=["classique"]),
        ],
        interests=["vegan", "brunch"],
        dining_patterns=[
            DiningPattern(pattern="déjeuner rapide", frequency=35, time_of_day=["midi"]),
            DiningPattern(pattern="dîner en famille", frequency=60, time_of_day=["soir"]),
        ],
    )


def test_demographic_insights_for_selected_segments() -> None:
    insights = build_demographic_insights(_snapshot(), ["25-34", "vegan"])

    assert insights[0] == "Tranches d'âge ciblées : 25-34 (40%)"
    assert insights[1] == "Préférences de ces tranches d'âge : healthy, street food"
    assert insights[2] == "Centres d'intérêt ciblés : vegan"
    assert "dîner en famille" in insights[3]
    assert insights[4] == "Moments de consommation : soir"


def test_demographic_insights_without_snapshot() -> None:
    assert build_demographic_insights(None, ["25-34"]) == []


def test_prioritize_dishes_by_popularity_then_restaurant_count() -> None:
    dishes = [
        CompetitorDish(dish_name="Pho", restaurant_count=2, popularity=2),
        CompetitorDish(dish_name="Ramen", restaurant_count=5, popularity=5),
        CompetitorDish(dish_name="Bao", restaurant_count=3, popularity=2),
    ]

    assert [dish.dish_name for dish in prioritize_dishes(dishes, 2)] == ["Ramen", "Bao"]


def test_select_competitor_dishes_is_case_insensitive() -> None:
    snapshot = CompetitorDishSnapshot(
        restaurant_id="resto-1",
        dishes=[CompetitorDish(dish_name="Ramen"), CompetitorDish(dish_name="Pho")],
    )

    assert [dish.dish_name for dish in select_competitor_dishes(snapshot, ["ramen"])] == ["Ramen"]
    assert select_competitor_dishes(snapshot, []) == []


def test_revision_response_falls_back_to_original_text() -> None:
    item = MenuItem(item_id="item-1", restaurant_id="resto-1", name="Burger", description="Boeuf")
    raw = '```json\n{"optimized_name": "Burger du chef", "optimized_description": ""}\n```'

    proposal = parse_revision_response(raw, item, ["Tranches d'âge ciblées : 25-34 (40%)"])

    assert proposal.item_id == "item-1"
    assert proposal.proposed_name == "Burger du chef"
    assert proposal.proposed_description == "Boeuf"
    assert proposal.rationale
    assert proposal.demographic_insights == ("Tranches d'âge ciblées : 25-34 (40%)",)


def test_suggestion_response_skips_existing_and_duplicate_dishes() -> None:
    raw = json.dumps(
        {
            "suggestions": [
                {"name": "Burger", "description": "déjà à la carte"},
                {
                    "name": "Ramen tonkotsu",
                    "description": "Bouillon porc",
                    "estimated_price": "16.5",
                    "category": "Plats",
                    "ingredients": ["nouilles", "porc"],
                    "based_on_dish": "Ramen",
                },
                {"name": "ramen TONKOTSU", "description": "doublon"},
                {"name": "Bao", "estimated_price": "n/a"},
                {"name": "Gyoza"},
            ]
        }
    )

    proposals = parse_suggestion_response(raw, limit=2, existing_names=["burger"])

    assert [proposal.name for proposal in proposals] == ["Ramen tonkotsu", "Bao"]
    assert proposals[0].estimated_price == 16.5
    assert proposals[0].ingredients == ("nouilles", "porc")
    assert proposals[0].based_on_dish == "Ramen"
    assert proposals[1].estimated_price == DEFAULT_SUGGESTION_PRICE
    assert proposals[1].category == "plat"


def test_suggestion_response_without_list_is_an_error() -> None:
    with pytest.raises(LLMResponseError):
        parse_suggestion_response('{"ideas": []}', limit=3)


def test_suggestion_prompt_lists_dishes_and_existing_names() -> None:
    restaurant = Restaurant(owner_id="user-1", name="Chez Nous", city="Lyon", cuisine="japonaise", price_level=2)
    dishes = [CompetitorDish(dish_name="Ramen", restaurant_count=4, popularity=4)]

    prompt = build_suggestion_prompt(restaurant, dishes, ["burger"], OptimizationCriteria(max_suggestions=3))

    assert "Nom : Chez Nous" in prompt
    assert "Cuisine : japonaise" in prompt
    assert "1. Ramen" in prompt
    assert "burger" in prompt
    assert "Propose 3 nouveaux plats" in prompt


def test_enhancement_prompt_includes_taste_profile() -> None:
    item = MenuItem(
        restaurant_id="resto-1",
        name="Curry",
        description="Curry de légumes",
        dietary_tags=["vegan"],
        taste_profile={"flavors": {"épicé": 0.9, "sucré": 0.2, "umami": 0.5}, "summary": "Chaleureux"},
    )

    prompt = build_enhancement_prompt(item, style="trendy", target_audience="étudiants")

    assert "Saveurs dominantes : épicé, umami, sucré" in prompt
    assert "Profil gustatif : Chaleureux" in prompt
    assert "Style souhaité : trendy" in prompt
    assert "Public cible : étudiants" in prompt


def test_parse_json_object_detects_truncation() -> None:
    assert parse_json_object('Voici : {"a": {"b": "}"}} merci') == {"a": {"b": "}"}}
    with pytest.raises(TruncatedResponse):
        parse_json_object('{"categories": [{"name": "Plats"')
