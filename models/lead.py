from enum import Enum

from tortoise.models import Model
from tortoise import fields


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    LOST = "lost"


class Lead(Model):
    id = fields.IntField(primary_key=True)
    user = fields.ForeignKeyField("models.User", related_name="leads", on_delete=fields.CASCADE)

    form_id = fields.CharField(max_length=64)
    form_name = fields.CharField(max_length=255, null=True)
    page_id = fields.CharField(max_length=64, null=True)
    page_name = fields.CharField(max_length=255, null=True)

    # upstream leadgen id, globally unique
    lead_id = fields.CharField(max_length=64, unique=True)

    full_name = fields.CharField(max_length=255, null=True)
    email = fields.CharField(max_length=255, null=True)
    phone = fields.CharField(max_length=64, null=True)

    created_time = fields.DatetimeField()
    field_data = fields.JSONField(default=list)
    raw_data = fields.JSONField(default=dict)

    # user-managed; never written by sync
    status = fields.CharEnumField(LeadStatus, max_length=16, default=LeadStatus.NEW)
    notes = fields.TextField(null=True)

    last_synced_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "leads"
        indexes = (("user_id", "form_id", "created_time"),)

    def __str__(self) -> str:
        return f"<Lead {self.lead_id} {self.full_name} ({self.email})>"
