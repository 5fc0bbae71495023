# models/website.py
from enum import Enum
from tortoise import fields, models


class Plan(str, Enum):
    FREE = "FREE"
    BASIC = "BASIC"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"


class Status(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


# plans allowed to use the Messenger bot
MESSENGER_PLANS = (Plan.BASIC, Plan.PRO, Plan.ENTERPRISE)

# what a disconnect writes back
MESSENGER_FIELDS_CLEARED = {
    "messenger_enabled": False,
    "facebook_page_id": None,
    "facebook_page_name": None,
    "facebook_page_access_token": None,
    "token_expires_at": None,
}


class Website(models.Model):
    """
    One registered WordPress site: licensing, plan, credit counters and the
    optional Facebook Page binding used by the Messenger bot.
    """
    id = fields.IntField(primary_key=True)
    domain = fields.CharField(max_length=255, unique=True)
    title = fields.CharField(max_length=255, default="")
    license_key = fields.CharField(max_length=64, unique=True)

    plan = fields.CharEnumField(Plan, default=Plan.FREE, max_length=16)
    status = fields.CharEnumField(Status, default=Status.ACTIVE, max_length=16)

    # remaining <= total is kept by the callers, not by the database
    credits_total = fields.IntField(default=0)
    credits_remaining = fields.IntField(default=0)
    credits_used = fields.IntField(default=0)

    subscription_start = fields.DatetimeField(null=True)
    subscription_end = fields.DatetimeField(null=True)
    next_reset = fields.DatetimeField(null=True)
    last_sync = fields.DatetimeField(null=True)

    # Messenger; a Page may be bound to one website only
    messenger_enabled = fields.BooleanField(default=False)
    facebook_page_id = fields.CharField(max_length=64, null=True, unique=True)
    facebook_page_name = fields.CharField(max_length=255, null=True)
    facebook_page_access_token = fields.TextField(null=True)
    token_expires_at = fields.DatetimeField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "websites"

    @property
    def has_messenger_binding(self) -> bool:
        return bool(self.messenger_enabled and self.facebook_page_id and self.token_expires_at)

    def credits_payload(self) -> dict:
        return {
            "domain": self.domain,
            "credits_total": self.credits_total,
            "credits_remaining": self.credits_remaining,
            "plan": self.plan.value if isinstance(self.plan, Plan) else str(self.plan),
        }
