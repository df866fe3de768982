from enum import Enum

from tortoise import fields
from tortoise.models import Model


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class Asset(Model):
    id = fields.UUIDField(primary_key=True)
    owner = fields.ForeignKeyField(
        "models.Identity", related_name="assets", on_delete=fields.CASCADE
    )
    storage_key = fields.CharField(
        max_length=512, unique=True, description="Generated object storage key"
    )
    original_filename = fields.CharField(
        max_length=255, description="Original filename as uploaded by user"
    )
    title = fields.CharField(max_length=255, null=True)
    description = fields.TextField(null=True)
    alt_text = fields.CharField(max_length=500, null=True)
    content_type = fields.CharField(max_length=100)
    file_size = fields.BigIntField(description="File size in bytes")
    width = fields.IntField(null=True, description="Image width in pixels")
    height = fields.IntField(null=True, description="Image height in pixels")
    visibility = fields.CharEnumField(Visibility, default=Visibility.PUBLIC)
    tags = fields.JSONField(default=list)
    folder = fields.CharField(max_length=255, default="")
    storage_file_id = fields.CharField(max_length=255, null=True)
    storage_file_name = fields.CharField(max_length=512, null=True)
    url = fields.CharField(max_length=1024, description="Public delivery URL")
    externally_hosted = fields.BooleanField(
        default=True, description="False when stored by the local fallback"
    )
    view_count = fields.IntField(default=0)
    download_count = fields.IntField(default=0)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "assets"

    def __str__(self) -> str:
        return f"<Asset(id={self.id}, key='{self.storage_key}')>"
