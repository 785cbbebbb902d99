from typing import Optional

from fastapi import APIRouter, Depends

from routes.deps import Services, get_services, http_error, report_to_dict
from utils.errors import UserMismatch

router = APIRouter()


@router.get("/status")
async def sync_status(services: Services = Depends(get_services)):
    status = services.sync.status
    return {
        "last_sync_at": status.last_sync_at.isoformat() if status.last_sync_at else None,
        "pending_changes": status.pending_changes,
        "in_progress": status.in_progress,
        "last_error": status.last_error,
        "retry_count": status.retry_count,
    }


@router.post("/force")
async def force_sync(user_id: Optional[str] = None, services: Services = Depends(get_services)):
    """User-triggered pull then flush."""
    try:
        report = await services.sync.force_sync(user_id)
    except UserMismatch as exc:
        raise http_error(exc)
    return report_to_dict(report)
