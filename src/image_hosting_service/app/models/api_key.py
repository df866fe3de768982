from tortoise import fields
from tortoise.models import Model


class ApiKey(Model):
    id = fields.UUIDField(primary_key=True)
    owner = fields.ForeignKeyField(
        "models.Identity", related_name="api_keys", on_delete=fields.CASCADE
    )
    name = fields.CharField(max_length=100)
    prefix = fields.CharField(
        max_length=16, description="Leading characters shown in listings"
    )
    key_hash = fields.CharField(
        max_length=64, unique=True, description="SHA-256 of the key"
    )
    is_active = fields.BooleanField(default=True)
    request_count = fields.IntField(default=0)
    last_used_at = fields.DatetimeField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "api_keys"

    def __str__(self) -> str:
        return f"<ApiKey(id={self.id}, name='{self.name}', prefix='{self.prefix}')>"
