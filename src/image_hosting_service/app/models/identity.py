from enum import Enum

from tortoise import fields
from tortoise.models import Model


class IdentityStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class Identity(Model):
    id = fields.UUIDField(primary_key=True)
    email = fields.CharField(max_length=255, unique=True)
    password_hash = fields.CharField(max_length=255, null=True)
    email_verified = fields.BooleanField(default=False)
    verification_token = fields.CharField(max_length=128, null=True)
    is_admin = fields.BooleanField(default=False)
    status = fields.CharEnumField(IdentityStatus, default=IdentityStatus.ACTIVE)
    plan = fields.CharField(max_length=32, default="free")
    storage_used = fields.BigIntField(default=0, description="Bytes stored")
    storage_limit = fields.BigIntField(
        default=1024 * 1024 * 1024, description="Bytes allowed"
    )

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    assets = fields.ReverseRelation["Asset"]
    api_keys = fields.ReverseRelation["ApiKey"]

    class Meta:
        table = "identities"

    def __str__(self) -> str:
        return f"<Identity(id={self.id}, email='{self.email}')>"

    @property
    def is_active(self) -> bool:
        return self.status == IdentityStatus.ACTIVE

    @property
    def storage_remaining(self) -> int:
        return max(self.storage_limit - self.storage_used, 0)
