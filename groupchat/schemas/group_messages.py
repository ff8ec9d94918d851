from pydantic import BaseModel, ConfigDict, Field, field_serializer
from datetime import datetime
from groupchat.core.server_config import get_static_url
from groupchat.schemas.groups import UserBrief


# attachment descriptor, sent by clients and echoed back
class MediaInfo(BaseModel):
    url: str = Field(min_length=1, max_length=512)
    type: str | None = Field(None, max_length=128)
    filename: str | None = Field(None, max_length=256)
    size: int | None = Field(None, ge=0)

    @field_serializer('url')
    def serialize_url(self, url: str) -> str:
        return get_static_url(url)


class ReadReceipt(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user: UserBrief
    read_at: datetime


# reply target, kept flat to avoid nesting whole threads
class ReplyPreview(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    content: str
    message_type: str
    is_deleted: bool


class GroupMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    group_id: int
    group_name: str | None = None
    sender: UserBrief
    content: str
    message_type: str
    media: MediaInfo | None = None
    reply_to: ReplyPreview | None = None
    is_edited: bool
    edited_at: datetime | None = None
    is_deleted: bool
    deleted_at: datetime | None = None
    read_by: list[ReadReceipt] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
