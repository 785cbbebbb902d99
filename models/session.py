from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from models.review import ReviewAnswer


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class StudySession(BaseModel):
    id: str
    queue: List[str] = Field(default_factory=list)
    position: int = 0
    answers: List[ReviewAnswer] = Field(default_factory=list)
    state: SessionState = SessionState.IDLE
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    total_paused_seconds: float = 0.0
    ended_at: Optional[datetime] = None


class SessionSummary(BaseModel):
    session_id: str
    date: str  # ISO date
    cards_reviewed: int
    correct_answers: int
    total_seconds: int
    average_response_seconds: float

    @property
    def accuracy(self) -> float:
        if self.cards_reviewed <= 0:
            return 0.0
        return round(self.correct_answers / self.cards_reviewed * 100, 1)
