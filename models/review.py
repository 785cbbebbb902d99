from datetime import datetime
from enum import Enum

from pydantic import BaseModel, field_validator

from models.card import as_utc


class RecallQuality(str, Enum):
    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


class ReviewAnswer(BaseModel):
    card_id: str
    quality: int
    answered_at: datetime

    @field_validator("quality")
    @classmethod
    def validate_quality(cls, v):
        if not 0 <= v <= 5:
            raise ValueError("quality must be between 0 and 5")
        return v

    @field_validator("answered_at")
    @classmethod
    def normalize_answered_at(cls, v):
        return as_utc(v)

    @property
    def correct(self) -> bool:
        return self.quality >= 3
