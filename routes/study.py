from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from models.review import RecallQuality
from routes.deps import Services, get_services, http_error
from utils.deck import build_review_deck
from utils.errors import CardNotFound, EmptyQueue, InvalidQuality, InvalidStateTransition
from utils.sm2 import map_recall_to_quality

router = APIRouter()

SESSION_ERRORS = (InvalidQuality, InvalidStateTransition, EmptyQueue, CardNotFound)


class StartRequest(BaseModel):
    mode: Optional[str] = None
    max_cards: Optional[int] = None


class AnswerRequest(BaseModel):
    quality: int


class RateRequest(BaseModel):
    recall: RecallQuality


def session_state(services: Services) -> dict:
    manager = services.sessions
    card = manager.current_card()
    return {
        "session_id": manager.session.id,
        "state": manager.state.value,
        "position": manager.session.position,
        "total": len(manager.session.queue),
        "remaining": manager.remaining(),
        "current_card": card.to_json_dict() if card else None,
    }


@router.get("/state")
async def get_state(services: Services = Depends(get_services)):
    return session_state(services)


@router.post("/start")
async def start_session(payload: Optional[StartRequest] = None, services: Services = Depends(get_services)):
    """Start a session over the cards selected for the configured study mode."""
    payload = payload or StartRequest()
    session_cfg = services.config.get("session", {})
    deck = build_review_deck(
        services.store.records(),
        services.sessions.today(),
        mode=payload.mode or session_cfg.get("mode", "review-only"),
        max_cards=payload.max_cards or session_cfg.get("max_cards", 20),
        mastery_rules=services.config.get("mastery"),
    )
    try:
        services.sessions.start_session(deck, max_cards=payload.max_cards)
    except SESSION_ERRORS as exc:
        raise http_error(exc)
    return session_state(services)


def _answer(services: Services, quality: int) -> dict:
    try:
        record = services.sessions.record_answer(quality)
    except SESSION_ERRORS as exc:
        raise http_error(exc)
    services.sync.schedule_flush()
    state = session_state(services)
    state["answered"] = record.to_json_dict()
    return state


@router.post("/answer")
async def answer(payload: AnswerRequest, services: Services = Depends(get_services)):
    """Quality response for the current card (0-5)."""
    return _answer(services, payload.quality)


@router.post("/rate")
async def rate(payload: RateRequest, services: Services = Depends(get_services)):
    """Again / Hard / Good / Easy button press."""
    return _answer(services, map_recall_to_quality(payload.recall))


@router.post("/pause")
async def pause(services: Services = Depends(get_services)):
    try:
        services.sessions.pause_session()
    except SESSION_ERRORS as exc:
        raise http_error(exc)
    return session_state(services)


@router.post("/resume")
async def resume(services: Services = Depends(get_services)):
    try:
        services.sessions.resume_session()
    except SESSION_ERRORS as exc:
        raise http_error(exc)
    return session_state(services)


@router.post("/end")
async def end(services: Services = Depends(get_services)):
    try:
        summary = services.sessions.end_session()
    except SESSION_ERRORS as exc:
        raise http_error(exc)
    state = session_state(services)
    state["summary"] = summary.model_dump()
    return state
