# controllers/websites_controller.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, conint, constr
from tortoise.expressions import Q

from helpers.audit import record_admin_action
from helpers.credits_backend import CreditsBackend, get_credits_backend
from helpers.get_admin import get_admin
from helpers.license import generate_license_key
from models.auth import User
from models.logs import AdminLog, UsageLog
from models.website import Plan, Status, Website

log = logging.getLogger("websites")

router = APIRouter(prefix="/websites", tags=["Websites"])


# ──────────────────────────────────────────────────────────────────────────────
# Schemas
# ──────────────────────────────────────────────────────────────────────────────
class CreateWebsiteBody(BaseModel):
    domain: constr(strip_whitespace=True, to_lower=True, min_length=3, max_length=255)
    title: constr(strip_whitespace=True, max_length=255) = ""
    plan: Plan = Plan.FREE
    credits_total: conint(ge=0) = 0
    subscription_start: Optional[datetime] = None
    subscription_end: Optional[datetime] = None


class UpdateWebsiteBody(BaseModel):
    title: Optional[constr(strip_whitespace=True, max_length=255)] = None
    plan: Optional[Plan] = None
    status: Optional[Status] = None


class CreditOperation(str, Enum):
    ADD = "add"
    DEDUCT = "deduct"


class CreditsBody(BaseModel):
    amount: conint(gt=0)
    operation: CreditOperation
    reason: Optional[str] = None


class ResetCreditsBody(BaseModel):
    reason: Optional[str] = None


class RenewBody(BaseModel):
    subscription_start: datetime
    subscription_end: datetime
    credits_total: conint(ge=0)
    plan: Plan


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────
def _now() -> datetime:
    return datetime.now(timezone.utc)


def _next_reset(now: Optional[datetime] = None) -> datetime:
    """First day of next month."""
    now = now or _now()
    if now.month == 12:
        return now.replace(year=now.year + 1, month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return now.replace(month=now.month + 1, day=1, hour=0, minute=0, second=0, microsecond=0)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def serialize_website(w: Website) -> dict:
    return {
        "id": w.id,
        "domain": w.domain,
        "title": w.title,
        "licenseKey": w.license_key,
        "plan": w.plan.value,
        "status": w.status.value,
        "creditsTotal": w.credits_total,
        "creditsRemaining": w.credits_remaining,
        "creditsUsed": w.credits_used,
        "subscriptionStart": _iso(w.subscription_start),
        "subscriptionEnd": _iso(w.subscription_end),
        "nextReset": _iso(w.next_reset),
        "lastSync": _iso(w.last_sync),
        "messengerEnabled": w.messenger_enabled,
        "facebookPageId": w.facebook_page_id,
        "facebookPageName": w.facebook_page_name,
        "tokenExpiresAt": _iso(w.token_expires_at),
        "createdAt": _iso(w.created_at),
        "updatedAt": _iso(w.updated_at),
    }


async def _get_website_or_404(website_id: int) -> Website:
    website = await Website.get_or_none(id=website_id)
    if not website:
        raise HTTPException(status_code=404, detail="Website not found")
    return website


async def _push_credits(credits: CreditsBackend, website: Website) -> bool:
    res = await credits.sync_credits(**website.credits_payload())
    if not res.success:
        log.error("credits sync failed for %s: %s", website.domain, res.message)
    return res.success


# ──────────────────────────────────────────────────────────────────────────────
# Read
# ──────────────────────────────────────────────────────────────────────────────
@router.get("")
async def list_websites(
    admin: Annotated[User, Depends(get_admin)],
    status: Optional[Status] = Query(None),
    plan: Optional[Plan] = Query(None),
    search: Optional[str] = Query(None),
):
    qs = Website.all()
    if status:
        qs = qs.filter(status=status)
    if plan:
        qs = qs.filter(plan=plan)
    if search:
        qs = qs.filter(Q(domain__icontains=search) | Q(title__icontains=search))

    rows = await qs.order_by("-created_at")
    return {"success": True, "data": [serialize_website(w) for w in rows]}


@router.get("/{website_id}")
async def get_website(website_id: int, admin: Annotated[User, Depends(get_admin)]):
    website = await _get_website_or_404(website_id)

    usage = await UsageLog.filter(website_id=website.id).order_by("-timestamp").limit(50)
    admin_logs = (
        await AdminLog.filter(website_id=website.id)
        .order_by("-timestamp")
        .limit(20)
        .prefetch_related("user")
    )

    data = serialize_website(website)
    data["usageLogs"] = [
        {
            "id": u.id,
            "operation": u.operation,
            "cost": u.cost,
            "creditsRemaining": u.credits_remaining,
            "timestamp": _iso(u.timestamp),
        }
        for u in usage
    ]
    data["adminLogs"] = [
        {
            "id": a.id,
            "action": a.action,
            "oldValue": a.old_value,
            "newValue": a.new_value,
            "reason": a.reason,
            "timestamp": _iso(a.timestamp),
            "user": {"name": a.user.name, "email": a.user.email} if a.user else None,
        }
        for a in admin_logs
    ]
    return {"success": True, "data": data}


@router.get("/{website_id}/usage-logs/remote")
async def remote_usage_logs(
    website_id: int,
    admin: Annotated[User, Depends(get_admin)],
    credits: Annotated[CreditsBackend, Depends(get_credits_backend)],
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
):
    """Usage logs as recorded by the credits backend (source of truth for metering)."""
    website = await _get_website_or_404(website_id)
    res = await credits.get_usage_logs(website.domain, page=page, per_page=per_page)
    if not res.success:
        raise HTTPException(status_code=502, detail=res.message)
    return {"success": True, "data": res.data}


# ──────────────────────────────────────────────────────────────────────────────
# Write
# ──────────────────────────────────────────────────────────────────────────────
@router.post("", status_code=201)
async def create_website(
    body: CreateWebsiteBody,
    admin: Annotated[User, Depends(get_admin)],
    credits: Annotated[CreditsBackend, Depends(get_credits_backend)],
):
    if await Website.filter(domain=body.domain).exists():
        raise HTTPException(status_code=400, detail="Domain already exists")

    website = await Website.create(
        domain=body.domain,
        title=body.title,
        license_key=generate_license_key(),
        plan=body.plan,
        status=Status.ACTIVE,
        credits_total=body.credits_total,
        credits_remaining=body.credits_total,
        credits_used=0,
        subscription_start=body.subscription_start,
        subscription_end=body.subscription_end,
        next_reset=_next_reset(),
    )

    await record_admin_action(
        website.id,
        admin.id,
        "website_created",
        new_value={
            "domain": website.domain,
            "title": website.title,
            "plan": website.plan.value,
            "creditsTotal": website.credits_total,
        },
        reason="Initial setup",
    )
    await _push_credits(credits, website)
    return {"success": True, "data": serialize_website(website)}


@router.patch("/{website_id}")
async def update_website(
    website_id: int,
    body: UpdateWebsiteBody,
    admin: Annotated[User, Depends(get_admin)],
    credits: Annotated[CreditsBackend, Depends(get_credits_backend)],
):
    website = await _get_website_or_404(website_id)
    old = {"title": website.title, "plan": website.plan.value, "status": website.status.value}

    if body.title:
        website.title = body.title
    if body.plan:
        website.plan = body.plan
    if body.status:
        website.status = body.status
    await website.save()

    await record_admin_action(
        website.id,
        admin.id,
        "website_updated",
        old_value=old,
        new_value={"title": website.title, "plan": website.plan.value, "status": website.status.value},
        reason="Manual update",
    )
    if body.plan:
        await _push_credits(credits, website)
    return {"success": True, "data": serialize_website(website)}


@router.delete("/{website_id}")
async def delete_website(website_id: int, admin: Annotated[User, Depends(get_admin)]):
    website = await _get_website_or_404(website_id)
    # admin/usage logs go with it (FK cascade)
    await website.delete()
    log.info("website %s (%s) deleted by user=%s", website_id, website.domain, admin.id)
    return {"success": True}


@router.post("/{website_id}/credits")
async def update_credits(
    website_id: int,
    body: CreditsBody,
    admin: Annotated[User, Depends(get_admin)],
    credits: Annotated[CreditsBackend, Depends(get_credits_backend)],
):
    website = await _get_website_or_404(website_id)
    old_remaining = website.credits_remaining
    old_total = website.credits_total

    if body.operation == CreditOperation.ADD:
        website.credits_remaining = old_remaining + body.amount
        website.credits_total = old_total + body.amount
    else:
        website.credits_remaining = max(0, old_remaining - body.amount)

    website.last_sync = _now()
    await website.save()

    await record_admin_action(
        website.id,
        admin.id,
        f"credits_{body.operation.value}",
        old_value={"creditsRemaining": old_remaining, "creditsTotal": old_total},
        new_value={"creditsRemaining": website.credits_remaining, "creditsTotal": website.credits_total},
        reason=body.reason or f"Credits {body.operation.value}ed by admin",
    )
    await _push_credits(credits, website)
    return {"success": True, "data": serialize_website(website)}


@router.post("/{website_id}/credits/reset")
async def reset_credits(
    website_id: int,
    admin: Annotated[User, Depends(get_admin)],
    credits: Annotated[CreditsBackend, Depends(get_credits_backend)],
    body: Optional[ResetCreditsBody] = None,
):
    website = await _get_website_or_404(website_id)
    old = {"creditsRemaining": website.credits_remaining, "creditsUsed": website.credits_used}

    website.credits_remaining = website.credits_total
    website.credits_used = 0
    website.next_reset = _next_reset()
    website.last_sync = _now()
    await website.save()

    await record_admin_action(
        website.id,
        admin.id,
        "credits_reset",
        old_value=old,
        new_value={"creditsRemaining": website.credits_total, "creditsUsed": 0},
        reason=(body.reason if body else None) or "Manual credit reset",
    )
    await _push_credits(credits, website)
    return {"success": True, "data": serialize_website(website)}


@router.post("/{website_id}/sync")
async def manual_sync(
    website_id: int,
    admin: Annotated[User, Depends(get_admin)],
    credits: Annotated[CreditsBackend, Depends(get_credits_backend)],
):
    website = await _get_website_or_404(website_id)
    res = await credits.sync_credits(**website.credits_payload())
    if not res.success:
        raise HTTPException(status_code=502, detail=res.message)

    website.last_sync = _now()
    await website.save()
    return {"success": True, "message": "Synced successfully"}


@router.post("/{website_id}/renew")
async def renew_subscription(
    website_id: int,
    body: RenewBody,
    admin: Annotated[User, Depends(get_admin)],
    credits: Annotated[CreditsBackend, Depends(get_credits_backend)],
):
    if body.subscription_end <= body.subscription_start:
        raise HTTPException(status_code=400, detail="subscription_end must be after subscription_start")

    website = await _get_website_or_404(website_id)
    website.subscription_start = body.subscription_start
    website.subscription_end = body.subscription_end
    website.credits_total = body.credits_total
    website.credits_remaining = body.credits_total
    website.credits_used = 0
    website.plan = body.plan
    website.status = Status.ACTIVE
    await website.save()

    await _push_credits(credits, website)
    await record_admin_action(
        website.id,
        admin.id,
        "renew_subscription",
        new_value=body.model_dump(mode="json"),
        reason="Manual subscription renewal",
    )
    return {"success": True, "data": serialize_website(website)}


@router.post("/{website_id}/license-key")
async def regenerate_license_key(website_id: int, admin: Annotated[User, Depends(get_admin)]):
    website = await _get_website_or_404(website_id)
    old_key = website.license_key

    website.license_key = generate_license_key()
    await website.save()

    await record_admin_action(
        website.id,
        admin.id,
        "regenerate_license_key",
        old_value={"licenseKey": old_key},
        new_value={"licenseKey": website.license_key},
        reason="Manual license key regeneration",
    )
    return {"success": True, "licenseKey": website.license_key}
