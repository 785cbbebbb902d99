from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_EASINESS_FACTOR = 2.5
MIN_EASINESS_FACTOR = 1.3


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so timestamps always compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CardContent(BaseModel):
    front: str
    back: str
    example_front: Optional[str] = None
    example_back: Optional[str] = None
    image: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class FlashcardRecord(CardContent):
    """A card plus its SM-2 scheduling state and local sync marker."""

    id: str
    due_date: date
    interval_days: int = Field(default=0, ge=0)
    easiness_factor: float = DEFAULT_EASINESS_FACTOR
    repetitions: int = Field(default=0, ge=0)
    last_reviewed: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utc_now)
    dirty: bool = False

    @field_validator("easiness_factor")
    @classmethod
    def validate_easiness_factor(cls, v):
        if v < MIN_EASINESS_FACTOR:
            raise ValueError(f"easinessFactor must be >= {MIN_EASINESS_FACTOR}")
        return v

    @field_validator("updated_at", "last_reviewed")
    @classmethod
    def normalize_timestamp(cls, v):
        if v is None:
            return v
        return as_utc(v)

    @classmethod
    def new(cls, card_id: str, front: str, back: str, today: Optional[date] = None, **content) -> "FlashcardRecord":
        """Fresh card, due today, not yet synced."""
        return cls(
            id=card_id,
            front=front,
            back=back,
            due_date=today or utc_now().date(),
            dirty=True,
            **content,
        )

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
