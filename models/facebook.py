# models/facebook.py
from datetime import datetime, timezone
from enum import Enum

from tortoise import fields, models


class TokenType(str, Enum):
    SHORT_LIVED = "short_lived"
    LONG_LIVED = "long_lived"


def default_app_name(now: datetime = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"Facebook App ({now.strftime('%Y-%m-%d %H:%M:%S')})"


class FacebookApp(models.Model):
    """
    A named app credential (app id + access token) owned by a user.
    A user may connect several apps; each one carries its own token lifecycle.
    """
    id = fields.UUIDField(primary_key=True)
    user = fields.ForeignKeyField("models.User", related_name="facebook_apps", on_delete=fields.CASCADE)
    app_id = fields.CharField(max_length=64, index=True)
    app_name = fields.CharField(max_length=255)
    access_token = fields.TextField()
    token_type = fields.CharEnumField(TokenType, max_length=16, default=TokenType.SHORT_LIVED)
    expires_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "facebook_apps"
        ordering = ["created_at"]

    async def save(self, *args, **kwargs):
        if not (self.app_name or "").strip():
            self.app_name = default_app_name()
        else:
            self.app_name = self.app_name.strip()
        await super().save(*args, **kwargs)


class FacebookForm(models.Model):
    """
    A lead-generation form the user syncs leads from.
    `facebook_app` is null when the form was linked through the legacy token.
    """
    id = fields.IntField(primary_key=True)
    user = fields.ForeignKeyField("models.User", related_name="forms", on_delete=fields.CASCADE)
    form_id = fields.CharField(max_length=64)
    form_name = fields.CharField(max_length=255, null=True)
    page_id = fields.CharField(max_length=64, null=True, index=True)
    page_name = fields.CharField(max_length=255, null=True)
    facebook_app = fields.ForeignKeyField(
        "models.FacebookApp", related_name="forms", null=True, on_delete=fields.SET_NULL
    )
    last_fetched_at = fields.DatetimeField(null=True)
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "facebook_forms"
        unique_together = (("user", "form_id"),)

    def __str__(self) -> str:
        return f"<FacebookForm {self.form_id} ({self.form_name})>"
