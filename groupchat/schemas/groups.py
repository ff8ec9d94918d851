from pydantic import BaseModel, ConfigDict, Field, field_serializer
from datetime import datetime
from groupchat.core.server_config import get_static_url


# user as embedded in group / message payloads
class UserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    avatar: str | None = None
    is_online: bool = False
    last_seen: datetime | None = None

    @field_serializer('avatar')
    def serialize_avatar(self, avatar: str | None) -> str | None:
        """Relative static path → full URL"""
        if avatar:
            return get_static_url(avatar)
        return avatar


class LastMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    content: str | None = None
    sender: UserBrief | None = None
    timestamp: datetime


# group with members, admins and creator hydrated
class GroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    name: str
    description: str = ""
    group_image: str = ""
    members: list[UserBrief] = Field(default_factory=list, validation_alias="member_users")
    admins: list[UserBrief] = Field(default_factory=list, validation_alias="admin_users")
    created_by: UserBrief = Field(validation_alias="creator")
    is_private: bool = False
    max_members: int
    member_count: int
    last_message: LastMessage | None = None
    created_at: datetime
    updated_at: datetime

    @field_serializer('group_image')
    def serialize_group_image(self, group_image: str) -> str:
        if group_image:
            return get_static_url(group_image)
        return group_image
