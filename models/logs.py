# models/logs.py
from tortoise import fields, models


class AdminLog(models.Model):
    """
    Append-only audit trail of administrative changes to a website.
    """
    id = fields.IntField(primary_key=True)
    website = fields.ForeignKeyField(
        "models.Website",
        related_name="admin_logs",
        on_delete=fields.CASCADE,
        index=True,
    )
    user = fields.ForeignKeyField(
        "models.User",
        related_name="admin_logs",
        null=True,
        on_delete=fields.SET_NULL,
    )
    action = fields.CharField(max_length=64, index=True)  # "website_created", "credits_add", ...
    old_value = fields.JSONField(null=True)
    new_value = fields.JSONField(null=True)
    reason = fields.CharField(max_length=512, null=True)
    timestamp = fields.DatetimeField(auto_now_add=True, index=True)

    class Meta:
        table = "admin_logs"


class UsageLog(models.Model):
    id = fields.IntField(primary_key=True)
    website = fields.ForeignKeyField(
        "models.Website",
        related_name="usage_logs",
        on_delete=fields.CASCADE,
        index=True,
    )
    operation = fields.CharField(max_length=64, index=True)  # "search", "chat", "messenger_reply", ...
    cost = fields.IntField(default=0)
    credits_remaining = fields.IntField(default=0)
    meta = fields.JSONField(null=True)
    timestamp = fields.DatetimeField(auto_now_add=True, index=True)

    class Meta:
        table = "usage_logs"
