from tortoise import fields, models


class AnalyticsCache(models.Model):
    """
    Cached insights payload for (user, ad account, date preset, breakdown).
    `breakdown` is "" when no breakdown was requested.
    """
    id = fields.IntField(primary_key=True)
    user = fields.ForeignKeyField("models.User", related_name="analytics_cache", on_delete=fields.CASCADE)
    ad_account_id = fields.CharField(max_length=64)
    date_preset = fields.CharField(max_length=32)
    breakdown = fields.CharField(max_length=64, default="")
    data = fields.JSONField(null=True)
    fetched_at = fields.DatetimeField()
    expires_at = fields.DatetimeField(index=True)

    class Meta:
        table = "analytics_cache"
        unique_together = (("user", "ad_account_id", "date_preset", "breakdown"),)
