from tortoise import fields
from tortoise.models import Model


class User(Model):
    id = fields.IntField(primary_key=True)
    name = fields.CharField(max_length=255)
    email = fields.CharField(max_length=255, unique=True)
    password = fields.CharField(max_length=255)

    # legacy single token, kept in sync with the most recently saved credential
    access_token = fields.TextField(null=True)

    # user-owned app used for short -> long lived token exchange
    facebook_app_id = fields.CharField(max_length=64, null=True)
    facebook_app_secret = fields.CharField(max_length=255, null=True)

    created_at = fields.DatetimeField(auto_now_add=True)

    facebook_apps = fields.ReverseRelation["FacebookApp"]
    forms = fields.ReverseRelation["FacebookForm"]

    class Meta:
        table = "users"

    def __str__(self) -> str:
        return f"<User #{self.id} {self.email}>"
