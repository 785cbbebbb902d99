from dataclasses import asdict

from fastapi import APIRouter, Depends

from routes.deps import Services, get_services
from utils.progress import calculate_progress_stats

router = APIRouter()

@router.get("/progress")
async def progress(services: Services = Depends(get_services)):
    """Card mastery counts and study session totals."""
    stats = calculate_progress_stats(
        services.store.records(),
        services.sessions.history,
        today=services.sessions.today(),
        mastery_rules=services.config.get("mastery"),
    )
    return asdict(stats)
