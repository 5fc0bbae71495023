# controllers/logs_controller.py
import math
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from helpers.get_admin import get_admin
from models.auth import User
from models.logs import AdminLog, UsageLog

router = APIRouter(prefix="/logs", tags=["Logs"])


def _page_meta(total: int, page: int, per_page: int) -> dict:
    return {
        "total": total,
        "page": page,
        "perPage": per_page,
        "totalPages": math.ceil(total / per_page) if per_page else 0,
    }


def _site(log) -> Optional[dict]:
    w = log.website
    return {"domain": w.domain, "title": w.title} if w else None


@router.get("/admin")
async def list_admin_logs(
    admin: Annotated[User, Depends(get_admin)],
    website_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
):
    qs = AdminLog.all()
    if website_id:
        qs = qs.filter(website_id=website_id)
    if action:
        qs = qs.filter(action__icontains=action)

    total = await qs.count()
    rows = (
        await qs.order_by("-timestamp")
        .offset((page - 1) * per_page)
        .limit(per_page)
        .prefetch_related("website", "user")
    )
    logs = [
        {
            "id": r.id,
            "websiteId": r.website_id,
            "action": r.action,
            "oldValue": r.old_value,
            "newValue": r.new_value,
            "reason": r.reason,
            "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            "website": _site(r),
            "user": {"name": r.user.name, "email": r.user.email} if r.user else None,
        }
        for r in rows
    ]
    return {"success": True, "data": {"logs": logs, **_page_meta(total, page, per_page)}}


@router.get("/usage")
async def list_usage_logs(
    admin: Annotated[User, Depends(get_admin)],
    website_id: Optional[int] = Query(None),
    operation: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
):
    qs = UsageLog.all()
    if website_id:
        qs = qs.filter(website_id=website_id)
    if operation:
        qs = qs.filter(operation=operation)

    total = await qs.count()
    rows = (
        await qs.order_by("-timestamp")
        .offset((page - 1) * per_page)
        .limit(per_page)
        .prefetch_related("website")
    )
    logs = [
        {
            "id": r.id,
            "websiteId": r.website_id,
            "operation": r.operation,
            "cost": r.cost,
            "creditsRemaining": r.credits_remaining,
            "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            "website": _site(r),
        }
        for r in rows
    ]
    return {"success": True, "data": {"logs": logs, **_page_meta(total, page, per_page)}}
