import json
import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.asset import Visibility

MAX_TAGS = 20
MAX_TAG_LENGTH = 50
_FOLDER_PATTERN = re.compile(r"^[A-Za-z0-9 _\-/]*$")


def _parse_tags(value):
    if value is None or value == "":
        return []
    if isinstance(value, str):
        value = value.strip()
        if value.startswith("["):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as e:
                raise ValueError(f"tags is not valid JSON: {e.msg}") from e
        else:
            value = value.split(",")
    if not isinstance(value, list):
        raise ValueError("tags must be a list of strings")

    tags = []
    for tag in value:
        if not isinstance(tag, str):
            raise ValueError("tags must be a list of strings")
        tag = tag.strip()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"tags may not exceed {MAX_TAG_LENGTH} characters")
        if tag not in tags:
            tags.append(tag)

    if len(tags) > MAX_TAGS:
        raise ValueError(f"at most {MAX_TAGS} tags are allowed")
    return tags


def _normalize_folder(value):
    if value is None:
        return ""
    value = value.strip().strip("/")
    if not _FOLDER_PATTERN.match(value):
        raise ValueError(
            "folder may only contain letters, digits, spaces, '-', '_' and '/'"
        )
    if value and any(part in ("", ".", "..") for part in value.split("/")):
        raise ValueError("folder contains an empty or relative path segment")
    return value


class UploadOptions(BaseModel):
    """Optional form fields accepted alongside an uploaded image."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    privacy: Visibility = Field(default=Visibility.PUBLIC)
    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    alt_text: str | None = Field(default=None, alias="altText", max_length=500)
    tags: list[str] = Field(default_factory=list)
    folder: str = Field(default="", max_length=255)
    width: int | None = Field(default=None, ge=1)
    height: int | None = Field(default=None, ge=1)

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, value):
        return _parse_tags(value)

    @field_validator("folder", mode="before")
    @classmethod
    def normalize_folder(cls, value):
        return _normalize_folder(value)

    @field_validator("width", "height", mode="before")
    @classmethod
    def empty_dimension(cls, value):
        if value == "":
            return None
        return value


class AssetUpdateRequest(BaseModel):
    """Partial metadata update; the storage key and owner are not editable."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    alt_text: str | None = Field(default=None, alias="altText", max_length=500)
    tags: list[str] | None = None
    visibility: Visibility | None = Field(default=None, alias="privacy")
    folder: str | None = Field(default=None, max_length=255)

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, value):
        if value is None:
            return None
        return _parse_tags(value)

    @field_validator("folder", mode="before")
    @classmethod
    def normalize_folder(cls, value):
        if value is None:
            return None
        return _normalize_folder(value)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, by_alias=False)


class AssetResponse(BaseModel):
    """Public representation of an uploaded image"""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Asset identifier")
    title: str | None = Field(None, description="Display title")
    description: str | None = None
    alt_text: str | None = None
    original_filename: str = Field(..., description="Filename as uploaded")
    storage_key: str = Field(..., description="Object storage key")
    url: str = Field(..., description="Public delivery URL")
    content_type: str
    file_size: int = Field(..., description="File size in bytes")
    width: int | None = None
    height: int | None = None
    visibility: Visibility
    tags: list[str] = Field(default_factory=list)
    folder: str = ""
    externally_hosted: bool = Field(
        True, description="False when served from local fallback storage"
    )
    view_count: int = 0
    download_count: int = 0
    created_at: datetime
    updated_at: datetime


class UploadResponse(BaseModel):
    success: bool = True
    image: AssetResponse


class AssetListResponse(BaseModel):
    images: list[AssetResponse]
    total_count: int = Field(..., description="Total matching assets")
    limit: int
    offset: int


class DeleteResponse(BaseModel):
    success: bool = True
    message: str
    storage_deleted: bool = Field(
        ..., description="Whether the stored object was removed from storage"
    )


class FolderSummary(BaseModel):
    name: str
    count: int


class FolderListResponse(BaseModel):
    folders: list[FolderSummary]

