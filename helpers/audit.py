# helpers/audit.py
import logging
from typing import Any, Optional

from models.logs import AdminLog

log = logging.getLogger("audit")


async def record_admin_action(
    website_id: int,
    user_id: Optional[int],
    action: str,
    old_value: Optional[Any] = None,
    new_value: Optional[Any] = None,
    reason: Optional[str] = None,
) -> AdminLog:
    """Append one immutable audit row for an administrative change."""
    row = await AdminLog.create(
        website_id=website_id,
        user_id=user_id,
        action=action,
        old_value=old_value,
        new_value=new_value,
        reason=reason,
    )
    log.info("website=%s user=%s action=%s", website_id, user_id, action)
    return row
