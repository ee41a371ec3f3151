"""
Pydantic request / response schemas.

Transport models for the ranking endpoint plus the row shapes returned by the
Supabase collaborators. Kept separate from the scoring code so the pipeline
never depends on how a row was fetched.
"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are treated as UTC so they compare with aware ones."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ──────────────────────────── Request ─────────────────────────────────────

class Location(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class RankingRequest(BaseModel):
    user_id: str
    location: Location


# ──────────────────────────── Deals ───────────────────────────────────────

class DealTemplate(BaseModel):
    """The reusable part of a deal; nearby_deals nests it as JSON."""
    template_id: Optional[str] = None
    user_id: Optional[str] = None
    cuisine_id: Optional[str] = None
    restaurant_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None


class Deal(BaseModel):
    """A candidate deal instance as returned by the nearby_deals RPC."""
    deal_id: str
    template_id: Optional[str] = None
    created_at: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    distance_miles: Optional[float] = None
    view_count: int = 0
    deal_template: DealTemplate = Field(default_factory=DealTemplate)

    model_config = {"frozen": True}

    @field_validator("deal_template", mode="before")
    @classmethod
    def _template_or_empty(cls, value):
        return value if value is not None else {}

    @field_validator("created_at", "start_date", "end_date")
    @classmethod
    def _utc(cls, value):
        return _as_utc(value)

    @property
    def author_id(self) -> Optional[str]:
        return self.deal_template.user_id

    @property
    def restaurant_id(self) -> Optional[str]:
        return self.deal_template.restaurant_id

    @property
    def cuisine_id(self) -> Optional[str]:
        return self.deal_template.cuisine_id

    @property
    def title(self) -> Optional[str]:
        return self.deal_template.title


# ──────────────────────────── Moderation / engagement ─────────────────────

class ReportCount(BaseModel):
    deal_id: str
    report_count: int


class QualityComponents(BaseModel):
    """Pre-aggregated, time-decayed interaction evidence for one deal."""
    deal_id: str
    weighted_positives: float = 0.0
    weighted_negatives_abs: float = 0.0


class Interaction(BaseModel):
    deal_id: str
    interaction_type: Optional[str] = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value):
        return _as_utc(value)


# ──────────────────────────── Response ────────────────────────────────────

class RankedDeal(BaseModel):
    """One feed entry; list position is the rank."""
    deal_id: str
    distance: Optional[float]
    # Debug only — stripped from the response unless debug is enabled
    title: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    details: str
