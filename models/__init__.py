from .card import FlashcardRecord, CardContent
from .review import RecallQuality, ReviewAnswer
from .session import SessionState, StudySession, SessionSummary

__all__ = [
    'FlashcardRecord',
    'CardContent',
    'RecallQuality',
    'ReviewAnswer',
    'SessionState',
    'StudySession',
    'SessionSummary',
]
