import graphene

from groupchat.core.server_config import get_static_url


class Upload(graphene.Scalar):
    """A file part of a multipart GraphQL request, bound through the ``map`` field"""

    @staticmethod
    def serialize(value):
        return None

    @staticmethod
    def parse_value(value):
        return value

    @staticmethod
    def parse_literal(node, _variables=None):
        return None


class UserType(graphene.ObjectType):
    class Meta:
        name = "User"

    id = graphene.ID(required=True)
    username = graphene.String(required=True)
    avatar = graphene.String()
    is_online = graphene.Boolean(required=True)
    last_seen = graphene.DateTime()

    def resolve_avatar(parent, info):
        return get_static_url(parent.avatar) if parent.avatar else None


class LastMessageType(graphene.ObjectType):
    class Meta:
        name = "LastMessage"

    content = graphene.String()
    sender = graphene.Field(UserType)
    timestamp = graphene.DateTime()


class GroupType(graphene.ObjectType):
    class Meta:
        name = "Group"

    id = graphene.ID(required=True)
    name = graphene.String(required=True)
    description = graphene.String()
    group_image = graphene.String()
    members = graphene.List(graphene.NonNull(UserType), required=True)
    admins = graphene.List(graphene.NonNull(UserType), required=True)
    created_by = graphene.Field(UserType, required=True)
    is_private = graphene.Boolean(required=True)
    max_members = graphene.Int(required=True)
    member_count = graphene.Int(required=True)
    last_message = graphene.Field(LastMessageType)
    created_at = graphene.DateTime()
    updated_at = graphene.DateTime()

    def resolve_group_image(parent, info):
        return get_static_url(parent.group_image) if parent.group_image else ""

    def resolve_members(parent, info):
        return parent.member_users

    def resolve_admins(parent, info):
        return parent.admin_users

    def resolve_created_by(parent, info):
        return parent.creator


class MediaType(graphene.ObjectType):
    class Meta:
        name = "Media"

    url = graphene.String(required=True)
    type = graphene.String()
    filename = graphene.String()
    size = graphene.Int()

    def resolve_url(parent, info):
        return get_static_url(parent["url"])


class ReadReceiptType(graphene.ObjectType):
    class Meta:
        name = "ReadReceipt"

    user = graphene.Field(UserType, required=True)
    read_at = graphene.DateTime(required=True)


class GroupMessageType(graphene.ObjectType):
    class Meta:
        name = "GroupMessage"

    id = graphene.ID(required=True)
    group_id = graphene.ID(required=True)
    group_name = graphene.String()
    sender = graphene.Field(UserType, required=True)
    content = graphene.String()
    message_type = graphene.String(required=True)
    media = graphene.Field(MediaType)
    reply_to = graphene.Field(lambda: GroupMessageType)
    is_edited = graphene.Boolean(required=True)
    edited_at = graphene.DateTime()
    is_deleted = graphene.Boolean(required=True)
    deleted_at = graphene.DateTime()
    read_by = graphene.List(graphene.NonNull(ReadReceiptType), required=True)
    created_at = graphene.DateTime()
    updated_at = graphene.DateTime()


# ---------- mutation payloads: one shape for success and failure ----------

class GroupPayload(graphene.ObjectType):
    success = graphene.Boolean(required=True)
    code = graphene.String(required=True)
    message = graphene.String(required=True)
    group = graphene.Field(GroupType)


class GroupMessagePayload(graphene.ObjectType):
    success = graphene.Boolean(required=True)
    code = graphene.String(required=True)
    message = graphene.String(required=True)
    group_message = graphene.Field(GroupMessageType)


# ---------- inputs ----------

class CreateGroupInput(graphene.InputObjectType):
    name = graphene.String(required=True)
    description = graphene.String()
    group_image = Upload()
    members = graphene.List(graphene.NonNull(graphene.ID), required=True)
    is_private = graphene.Boolean()
    max_members = graphene.Int()


class MediaInput(graphene.InputObjectType):
    url = graphene.String(required=True)
    type = graphene.String()
    filename = graphene.String()
    size = graphene.Int()
