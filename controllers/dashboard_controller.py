# controllers/dashboard_controller.py
from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends
from tortoise.functions import Count, Sum

from helpers.get_admin import get_admin
from models.auth import User
from models.logs import AdminLog, UsageLog
from models.website import Status, Website

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_int(x) -> int:
    if x is None:
        return 0
    try:
        return int(x)
    except (TypeError, ValueError):
        return 0


@router.get("/stats")
async def dashboard_stats(admin: Annotated[User, Depends(get_admin)]):
    status_rows = await Website.annotate(c=Count("id")).group_by("status").values("status", "c")
    by_status = {str(getattr(r["status"], "value", r["status"])): _to_int(r["c"]) for r in status_rows}

    sums = (
        await Website.annotate(
            total=Sum("credits_total"),
            used=Sum("credits_used"),
            remaining=Sum("credits_remaining"),
        ).values("total", "used", "remaining")
        or [{}]
    )[0]

    plan_rows = await Website.annotate(c=Count("id")).group_by("plan").values("plan", "c")

    recent = await AdminLog.all().order_by("-timestamp").limit(10).prefetch_related("website", "user")

    # bucket in python so this works on sqlite and postgres alike
    since = _utcnow() - timedelta(days=7)
    stamps = await UsageLog.filter(timestamp__gte=since).values_list("timestamp", flat=True)
    per_day = Counter(ts.date().isoformat() for ts in stamps if ts)

    return {
        "success": True,
        "data": {
            "totalWebsites": sum(by_status.values()),
            "activeWebsites": by_status.get(Status.ACTIVE.value, 0),
            "inactiveWebsites": by_status.get(Status.INACTIVE.value, 0),
            "suspendedWebsites": by_status.get(Status.SUSPENDED.value, 0),
            "totalCreditsAllocated": _to_int(sums.get("total")),
            "totalCreditsUsed": _to_int(sums.get("used")),
            "totalCreditsRemaining": _to_int(sums.get("remaining")),
            "websitesByPlan": [
                {"plan": str(getattr(r["plan"], "value", r["plan"])), "count": _to_int(r["c"])}
                for r in plan_rows
            ],
            "recentActivity": [
                {
                    "id": a.id,
                    "action": a.action,
                    "reason": a.reason,
                    "timestamp": a.timestamp.isoformat() if a.timestamp else None,
                    "website": {"domain": a.website.domain, "title": a.website.title},
                    "user": {"name": a.user.name, "email": a.user.email} if a.user else None,
                }
                for a in recent
            ],
            "usageByDay": [{"date": d, "total": n} for d, n in sorted(per_day.items())],
        },
    }
