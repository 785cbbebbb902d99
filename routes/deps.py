from dataclasses import dataclass
from typing import Any, Dict

from fastapi import HTTPException, Request, status

from db.card_store import CardStore
from utils.errors import CardNotFound, EmptyQueue, InvalidQuality, InvalidStateTransition, UserMismatch
from utils.session import StudySessionManager
from utils.sync import SyncCoordinator, SyncReport


@dataclass
class Services:
    config: Dict[str, Any]
    store: CardStore
    sessions: StudySessionManager
    sync: SyncCoordinator


def get_services(request: Request) -> Services:
    services = request.app.state.services
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Not initialized")
    return services


def http_error(exc: Exception) -> HTTPException:
    """Translate scheduling errors into client errors."""
    if isinstance(exc, InvalidQuality):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, InvalidStateTransition):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, UserMismatch):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, (EmptyQueue, CardNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def report_to_dict(report: SyncReport) -> dict:
    return {
        "ok": report.ok,
        "operation": report.operation,
        "applied": report.applied,
        "conflicts": [str(conflict) for conflict in report.conflicts],
        "degraded": str(report.degraded) if report.degraded else None,
    }
