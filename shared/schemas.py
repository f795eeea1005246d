"""Pydantic schemas for the remote API wire format.

The server speaks snake_case JSON. Enum values go over the wire upper-cased
(``IN_PROGRESS``, ``PHOTO``) and are normalised back to the local lower-case
enums on the way in.
"""
from datetime import datetime
from typing import Optional, List
import bleach
from pydantic import BaseModel, ConfigDict, Field, field_validator, field_serializer
from shared.enums import ProjectStatus, FolderType, MediaType

ALLOWED_TAGS = ['p', 'br', 'strong', 'em', 'u', 'ul', 'ol', 'li', 'blockquote']


def sanitize_html(text: str) -> str:
    """Strip markup from user text before it leaves the device."""
    if not text:
        return text
    if '<' not in text and '>' not in text:
        return text
    return bleach.clean(text, tags=ALLOWED_TAGS, attributes={}, strip=True)


def _lower(value):
    if isinstance(value, str):
        return value.strip().lower()
    return value


class WireModel(BaseModel):
    """Base for all API payloads: unknown keys from the server are ignored."""
    model_config = ConfigDict(extra='ignore', populate_by_name=True)


# Responses

class FolderDTO(WireModel):
    id: str
    name: str
    folder_type: FolderType = FolderType.CUSTOM
    sort_order: int = 0
    photo_count: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('folder_type', mode='before')
    @classmethod
    def normalise_folder_type(cls, value):
        return _lower(value)


class ProjectDTO(WireModel):
    id: str
    name: str
    address: str = ''
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    client_name: Optional[str] = None
    status: ProjectStatus = ProjectStatus.WALKTHROUGH
    photo_count: Optional[int] = None
    folder_count: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # None means the server did not include folders, not "no folders".
    folders: Optional[List[FolderDTO]] = None

    @field_validator('status', mode='before')
    @classmethod
    def normalise_status(cls, value):
        return _lower(value)


class PhotoDTO(WireModel):
    id: str
    uploader_id: Optional[str] = None
    uploader_name: Optional[str] = None
    captured_at: datetime
    latitude: float = 0.0
    longitude: float = 0.0
    media_type: MediaType = MediaType.PHOTO
    remote_url: str
    thumbnail_url: Optional[str] = None
    note: Optional[str] = None
    folder_id: Optional[str] = None
    comment_count: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('media_type', mode='before')
    @classmethod
    def normalise_media_type(cls, value):
        return _lower(value)


class PhotoPage(WireModel):
    data: List[PhotoDTO] = Field(default_factory=list)
    page: int = 1
    limit: int = 50
    total: int = 0
    has_more: bool = False


class CommentDTO(WireModel):
    id: str
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    text: str = ''
    created_at: Optional[datetime] = None


class UploadTarget(WireModel):
    upload_url: str
    media_url: str
    thumbnail_upload_url: Optional[str] = None
    thumbnail_url: Optional[str] = None


class ShareLinkDTO(WireModel):
    id: str
    token: str
    share_url: Optional[str] = None
    folder_ids: List[str] = Field(default_factory=list)
    expires_at: Optional[datetime] = None
    password_protected: bool = False
    allow_download: bool = False
    allow_comments: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None


# Requests

class CreateProjectRequest(WireModel):
    name: str = Field(min_length=1, max_length=200)
    address: str = ''
    latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    client_name: Optional[str] = None
    status: ProjectStatus = ProjectStatus.WALKTHROUGH

    @field_serializer('status')
    def serialize_status(self, value):
        return value.value.upper()


class UpdateProjectRequest(WireModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    address: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    client_name: Optional[str] = None
    status: Optional[ProjectStatus] = None

    @field_serializer('status')
    def serialize_status(self, value):
        return value.value.upper() if value is not None else None


class CreateFolderRequest(WireModel):
    name: str = Field(min_length=1, max_length=200)
    folder_type: FolderType = FolderType.CUSTOM

    @field_serializer('folder_type')
    def serialize_folder_type(self, value):
        return value.value.upper()


class CreatePhotoRequest(WireModel):
    project_id: str
    folder_id: Optional[str] = None
    captured_at: datetime
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    media_type: MediaType = MediaType.PHOTO
    remote_url: str
    thumbnail_url: Optional[str] = None
    note: Optional[str] = None

    @field_validator('note')
    @classmethod
    def clean_note(cls, value):
        return sanitize_html(value) if value else value

    @field_serializer('media_type')
    def serialize_media_type(self, value):
        return value.value.upper()


class CreateCommentRequest(WireModel):
    text: str = Field(min_length=1)

    @field_validator('text')
    @classmethod
    def clean_text(cls, value):
        cleaned = sanitize_html(value.strip())
        if not cleaned:
            raise ValueError("comment text cannot be blank")
        return cleaned


class CreateShareLinkRequest(WireModel):
    folder_ids: Optional[List[str]] = None
    date_range_start: Optional[datetime] = None
    date_range_end: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    password: Optional[str] = None
    allow_download: bool = False
    allow_comments: bool = False
