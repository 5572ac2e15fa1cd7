from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Annotated, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    model_validator,
)

EnhancementStatus = Literal["none", "pending", "approved", "rejected"]
CandidateStatus = Literal["pending", "approved", "rejected"]
DecisionStatus = Literal["approved", "rejected"]
OptimizationMode = Literal["revise-existing", "suggest-new"]

REVISE_EXISTING: OptimizationMode = "revise-existing"
SUGGEST_NEW: OptimizationMode = "suggest-new"


class EnhancementRevision(BaseModel):
    """One generated description kept in a menu item's history."""

    description: str
    created_at: datetime
    parameters: Dict[str, Any] = Field(default_factory=dict)


class MenuItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    item_id: Optional[str] = None
    restaurant_id: str
    name: str
    description: str = ""
    enhanced_name: Optional[str] = None
    enhanced_description: Optional[str] = None
    price: float = 0.0
    category: str = ""
    ingredients: List[str] = Field(default_factory=list)
    dietary_tags: List[str] = Field(default_factory=list)
    taste_profile: Optional[Dict[str, Any]] = None
    ai_tags: List[str] = Field(default_factory=list)
    is_active: Optional[bool] = None
    is_ai_generated: Optional[bool] = None
    enhancement_status: EnhancementStatus = "none"
    enhancement_history: List[EnhancementRevision] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.enhanced_name or self.name

    @property
    def display_description(self) -> str:
        return self.enhanced_description or self.description


class MenuItemCreatePayload(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
    description: str = Field(default="", max_length=2000)
    price: float = Field(default=0.0, ge=0)
    category: str = Field(default="", max_length=100)
    ingredients: List[str] = Field(default_factory=list)
    dietary_tags: List[str] = Field(default_factory=list)
    is_active: Optional[bool] = None


class MenuItemPatch(BaseModel):
    """Sparse update of a menu item; only the fields that were sent are applied."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    enhanced_name: Optional[str] = None
    enhanced_description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, max_length=100)
    ingredients: Optional[List[str]] = None
    dietary_tags: Optional[List[str]] = None
    ai_tags: Optional[List[str]] = None
    is_active: Optional[bool] = None


class _CandidateBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    candidate_id: Optional[str] = None
    restaurant_id: str
    status: CandidateStatus = "pending"
    created_at: Optional[datetime] = None


class RevisionCandidate(_CandidateBase):
    """Proposed rewrite of an existing menu item."""

    kind: Literal["revision"] = "revision"
    item_id: str
    original_name: str
    proposed_name: str
    original_description: str = ""
    proposed_description: str = ""
    rationale: str = ""
    demographic_insights: List[str] = Field(default_factory=list)


class SuggestionCandidate(_CandidateBase):
    """Proposed brand new dish."""

    kind: Literal["suggestion"] = "suggestion"
    name: str
    description: str = ""
    estimated_price: float = 0.0
    category: str = ""
    ingredients: List[str] = Field(default_factory=list)
    dietary_tags: List[str] = Field(default_factory=list)
    inspiration_source: str = ""
    competitor_dish: Optional[str] = None


OptimizationCandidate = Annotated[
    Union[RevisionCandidate, SuggestionCandidate],
    Field(discriminator="kind"),
]


class AgeGroup(BaseModel):
    age_range: str
    percentage: float = 0.0
    preferences: List[str] = Field(default_factory=list)


class DiningPattern(BaseModel):
    pattern: str
    frequency: float = 0.0
    time_of_day: List[str] = Field(default_factory=list)


class DemographicSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    restaurant_id: str
    entity_id: Optional[str] = None
    age_groups: List[AgeGroup] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    dining_patterns: List[DiningPattern] = Field(default_factory=list)
    retrieved_at: Optional[datetime] = None


class SimilarRestaurant(BaseModel):
    name: str
    entity_id: str = ""
    address: str = ""
    business_rating: float = 0.0
    price_level: Optional[int] = None
    specialty_dishes: List[str] = Field(default_factory=list)


class CompetitorDish(BaseModel):
    dish_name: str
    tag_id: str = ""
    restaurant_count: int = 0
    popularity: float = 0.0


class CompetitorDishSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    restaurant_id: str
    entity_id: Optional[str] = None
    similar_restaurants: List[SimilarRestaurant] = Field(default_factory=list)
    dishes: List[CompetitorDish] = Field(default_factory=list)
    min_rating_filter: float = 0.0
    retrieved_at: Optional[datetime] = None


class Restaurant(BaseModel):
    model_config = ConfigDict(extra="ignore")

    restaurant_id: Optional[str] = None
    owner_id: str
    name: str
    city: str = ""
    state: str = ""
    cuisine: Optional[str] = None
    price_level: Optional[int] = None
    external_entity_id: Optional[str] = None
    profile_setup_complete: Optional[bool] = None
    created_at: Optional[datetime] = None


class RestaurantProfilePayload(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
    city: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=120)]
    state: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=120)]


class RestaurantSelection(BaseModel):
    """Reference entity picked from the market-data search results."""

    entity_id: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
    cuisine: Optional[str] = Field(default=None, max_length=100)
    price_level: Optional[int] = Field(default=None, ge=0, le=4)


class TrendData(BaseModel):
    date: str
    metric: str
    value: float


class MenuAnalytics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    analytics_id: Optional[str] = None
    restaurant_id: str
    item_id: str
    popularity_score: float = 0.0
    profitability_score: float = 0.0
    recommendation_score: float = 0.0
    trends: List[TrendData] = Field(default_factory=list)
    last_updated: Optional[datetime] = None


class OptimizationCriteria(BaseModel):
    """Selection criteria attached to an optimization request."""

    demographic_segments: List[str] = Field(default_factory=list)
    competitor_dishes: List[str] = Field(default_factory=list)
    cuisine_hint: Optional[str] = Field(default=None, max_length=120)
    item_ids: List[str] = Field(default_factory=list)
    style: Optional[Literal["casual", "upscale", "trendy", "traditional"]] = None
    target_audience: Optional[str] = Field(default=None, max_length=200)
    max_suggestions: int = Field(default=5, ge=1, le=20)
    exclude_categories: List[str] = Field(default_factory=list)


class OptimizationRequest(BaseModel):
    mode: OptimizationMode
    criteria: OptimizationCriteria = Field(default_factory=OptimizationCriteria)

    @model_validator(mode="before")
    @classmethod
    def _default_criteria(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("criteria") is None:
            data = dict(data)
            data["criteria"] = OptimizationCriteria()
        return data


class OptimizationAck(BaseModel):
    request_id: str
    restaurant_id: str
    mode: OptimizationMode
    status: Literal["submitted"] = "submitted"
    submitted_at: datetime


class CandidateDecisionPayload(BaseModel):
    approved: bool


class BatchDecisionPayload(BaseModel):
    decisions: Dict[str, bool] = Field(default_factory=dict)


class BatchDecisionResult(BaseModel):
    """Outcome of committing several decisions one after the other."""

    succeeded: int = 0
    failed: int = 0
    committed_ids: List[str] = Field(default_factory=list)
    errors: Dict[str, str] = Field(default_factory=dict)


class CandidateReview(BaseModel):
    restaurant_id: str
    mode: OptimizationMode
    pending: List[OptimizationCandidate] = Field(default_factory=list)
    approved: List[OptimizationCandidate] = Field(default_factory=list)
    rejected: List[OptimizationCandidate] = Field(default_factory=list)


class EnhancementRequest(BaseModel):
    item_ids: List[str] = Field(default_factory=list)
    style: Optional[str] = Field(default=None, max_length=60)
    target_audience: Optional[str] = Field(default=None, max_length=200)


class EnhancementDecisionPayload(BaseModel):
    status: DecisionStatus


class MenuFileReference(BaseModel):
    """Pointer to a menu file already uploaded through a signed URL."""

    file_name: str = Field(..., min_length=1, max_length=255)
    download_url: str = Field(..., min_length=1)
    content_type: Optional[str] = None


class TrendPayload(BaseModel):
    date: str
    metric: str = Field(..., min_length=1, max_length=60)
    value: float


class EnhancementResult(BaseModel):
    processed: int = 0
    failed: int = 0
    items: List[MenuItem] = Field(default_factory=list)
    errors: Dict[str, str] = Field(default_factory=dict)


class TasteProfileRequest(BaseModel):
    item_ids: List[str] = Field(default_factory=list)
    include_ingredients: bool = True
    include_dietary_tags: bool = True


class TasteProfileResult(BaseModel):
    processed: int = 0
    failed: int = 0
    items: List[MenuItem] = Field(default_factory=list)
    errors: Dict[str, str] = Field(default_factory=dict)


class MarketDataResponse(BaseModel):
    demographics: Optional[DemographicSnapshot] = None
    competitor_dishes: Optional[CompetitorDishSnapshot] = None
