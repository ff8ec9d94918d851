"""
GraphQL schema for groups and group messages.

Resolvers read the caller, DB session, notifier and media storage from the
request context and hand them to the services explicitly. Mutations always
answer with a payload (``success``/``code``/``message`` plus the entity);
queries report failures as GraphQL errors carrying ``extensions.code``.
"""
import logging
from contextlib import contextmanager

import graphene
from graphql import GraphQLError
from starlette.datastructures import UploadFile

from groupchat.core import errors
from groupchat.core.config import settings
from groupchat.graphql.types import (
    CreateGroupInput,
    GroupMessagePayload,
    GroupMessageType,
    GroupPayload,
    GroupType,
    MediaInput,
)
from groupchat.services import group_message_service, group_service

logger = logging.getLogger(__name__)


@contextmanager
def query_errors(operation: str):
    try:
        yield
    except errors.GroupChatError as e:
        logger.warning(f"{operation}: [{e.code}] {e.message}")
        raise GraphQLError(f"{operation}: {e.message}", extensions={"code": e.code})


async def respond(payload_type, field: str, operation: str, action):
    """Await ``action`` -> (entity, message) and wrap the outcome in ``payload_type``"""
    try:
        entity, message = await action
    except errors.GroupChatError as e:
        logger.warning(f"{operation} rejected: [{e.code}] {e.message}")
        return payload_type(success=False, code=e.code, message=e.message, **{field: None})
    return payload_type(success=True, code="OK", message=message, **{field: entity})


async def read_group_image(upload) -> bytes:
    if not isinstance(upload, UploadFile):
        raise errors.ValidationError("groupImage must be a file part")
    data = await upload.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise errors.ValidationError(f"groupImage exceeds {settings.MAX_UPLOAD_BYTES} bytes")
    return data


# ==================== queries ====================

class Query(graphene.ObjectType):
    get_user_groups = graphene.List(graphene.NonNull(GroupType), required=True)
    get_group_details = graphene.Field(GroupType, group_id=graphene.ID(required=True))
    search_groups = graphene.List(
        graphene.NonNull(GroupType),
        required=True,
        query=graphene.String(required=True),
        limit=graphene.Int(default_value=10),
    )
    get_group_messages = graphene.List(
        graphene.NonNull(GroupMessageType),
        required=True,
        group_id=graphene.ID(required=True),
        limit=graphene.Int(default_value=50),
        offset=graphene.Int(default_value=0),
    )
    get_group_unread_count = graphene.Int(required=True, group_id=graphene.ID(required=True))

    def resolve_get_user_groups(root, info):
        ctx = info.context
        with query_errors("Error fetching user groups"):
            return group_service.get_user_groups(ctx["db"], ctx["user"].id)

    def resolve_get_group_details(root, info, group_id):
        ctx = info.context
        with query_errors("Error fetching group details"):
            return group_service.get_group_details(ctx["db"], group_id, ctx["user"].id)

    def resolve_search_groups(root, info, query, limit):
        with query_errors("Error searching groups"):
            return group_service.search_groups(info.context["db"], query, limit)

    def resolve_get_group_messages(root, info, group_id, limit, offset):
        ctx = info.context
        with query_errors("Error fetching group messages"):
            return group_message_service.get_group_messages(ctx["db"], group_id, ctx["user"].id, limit, offset)

    def resolve_get_group_unread_count(root, info, group_id):
        ctx = info.context
        with query_errors("Error fetching unread count"):
            return group_message_service.get_group_unread_count(ctx["db"], group_id, ctx["user"].id)


# ==================== group mutations ====================

class CreateGroup(graphene.Mutation):
    class Arguments:
        input = CreateGroupInput(required=True)

    Output = GroupPayload

    async def mutate(root, info, input):
        ctx = info.context

        async def run():
            image = None
            upload = input.get("group_image")
            if upload is not None:
                image = await read_group_image(upload)
            group = await group_service.create_group(
                ctx["db"],
                ctx["user"].id,
                ctx["notifier"],
                name=input.get("name"),
                members=input.get("members"),
                description=input.get("description"),
                is_private=bool(input.get("is_private")),
                max_members=input.get("max_members"),
                image=image,
                storage=ctx["storage"],
            )
            return group, "Group created successfully"

        return await respond(GroupPayload, "group", "createGroup", run())


class UpdateGroup(graphene.Mutation):
    class Arguments:
        group_id = graphene.ID(required=True)
        name = graphene.String()
        description = graphene.String()
        group_image = graphene.String()

    Output = GroupPayload

    async def mutate(root, info, group_id, name=None, description=None, group_image=None):
        ctx = info.context

        async def run():
            group = await group_service.update_group(
                ctx["db"], group_id, ctx["user"].id, ctx["notifier"],
                name=name, description=description, group_image=group_image,
            )
            return group, "Group updated successfully"

        return await respond(GroupPayload, "group", "updateGroup", run())


class DeleteGroup(graphene.Mutation):
    class Arguments:
        group_id = graphene.ID(required=True)

    Output = GroupPayload

    async def mutate(root, info, group_id):
        ctx = info.context

        async def run():
            await group_service.delete_group(ctx["db"], group_id, ctx["user"].id, ctx["notifier"])
            return None, "Group deleted successfully"

        return await respond(GroupPayload, "group", "deleteGroup", run())


class TransferGroupOwnership(graphene.Mutation):
    class Arguments:
        group_id = graphene.ID(required=True)
        new_owner_id = graphene.ID(required=True)

    Output = GroupPayload

    async def mutate(root, info, group_id, new_owner_id):
        ctx = info.context

        async def run():
            group = await group_service.transfer_group_ownership(
                ctx["db"], group_id, new_owner_id, ctx["user"].id, ctx["notifier"]
            )
            return group, "Ownership transferred successfully"

        return await respond(GroupPayload, "group", "transferGroupOwnership", run())


class AddGroupMembers(graphene.Mutation):
    class Arguments:
        group_id = graphene.ID(required=True)
        member_ids = graphene.List(graphene.NonNull(graphene.ID), required=True)

    Output = GroupPayload

    async def mutate(root, info, group_id, member_ids):
        ctx = info.context

        async def run():
            group, added = await group_service.add_group_members(
                ctx["db"], group_id, member_ids, ctx["user"].id, ctx["notifier"]
            )
            return group, f"{len(added)} members added successfully"

        return await respond(GroupPayload, "group", "addGroupMembers", run())


class RemoveGroupMember(graphene.Mutation):
    class Arguments:
        group_id = graphene.ID(required=True)
        member_id = graphene.ID(required=True)

    Output = GroupPayload

    async def mutate(root, info, group_id, member_id):
        ctx = info.context

        async def run():
            group = await group_service.remove_group_member(
                ctx["db"], group_id, member_id, ctx["user"].id, ctx["notifier"]
            )
            return group, "Member removed successfully"

        return await respond(GroupPayload, "group", "removeGroupMember", run())


class LeaveGroup(graphene.Mutation):
    class Arguments:
        group_id = graphene.ID(required=True)

    Output = GroupPayload

    async def mutate(root, info, group_id):
        ctx = info.context

        async def run():
            group = await group_service.leave_group(ctx["db"], group_id, ctx["user"].id, ctx["notifier"])
            return group, "Left group successfully"

        return await respond(GroupPayload, "group", "leaveGroup", run())


class MakeGroupAdmin(graphene.Mutation):
    class Arguments:
        group_id = graphene.ID(required=True)
        member_id = graphene.ID(required=True)

    Output = GroupPayload

    async def mutate(root, info, group_id, member_id):
        ctx = info.context

        async def run():
            group = await group_service.make_group_admin(
                ctx["db"], group_id, member_id, ctx["user"].id, ctx["notifier"]
            )
            return group, "Member promoted to admin successfully"

        return await respond(GroupPayload, "group", "makeGroupAdmin", run())


# ==================== message mutations ====================

class SendGroupMessage(graphene.Mutation):
    class Arguments:
        group_id = graphene.ID(required=True)
        content = graphene.String()
        message_type = graphene.String(default_value="text")
        media = MediaInput()
        reply_to = graphene.ID()

    Output = GroupMessagePayload

    async def mutate(root, info, group_id, content=None, message_type="text", media=None, reply_to=None):
        ctx = info.context

        async def run():
            message = await group_message_service.send_group_message(
                ctx["db"], group_id, ctx["user"].id, ctx["notifier"],
                content=content, message_type=message_type, media=media, reply_to=reply_to,
            )
            return message, "Message sent"

        return await respond(GroupMessagePayload, "group_message", "sendGroupMessage", run())


class MarkGroupMessageAsRead(graphene.Mutation):
    class Arguments:
        message_id = graphene.ID(required=True)

    Output = GroupMessagePayload

    async def mutate(root, info, message_id):
        ctx = info.context

        async def run():
            message = group_message_service.mark_group_message_as_read(ctx["db"], message_id, ctx["user"].id)
            return message, "Message marked as read"

        return await respond(GroupMessagePayload, "group_message", "markGroupMessageAsRead", run())


class EditGroupMessage(graphene.Mutation):
    class Arguments:
        message_id = graphene.ID(required=True)
        content = graphene.String(required=True)

    Output = GroupMessagePayload

    async def mutate(root, info, message_id, content):
        ctx = info.context

        async def run():
            message = await group_message_service.edit_group_message(
                ctx["db"], message_id, content, ctx["user"].id, ctx["notifier"]
            )
            return message, "Message edited"

        return await respond(GroupMessagePayload, "group_message", "editGroupMessage", run())


class DeleteGroupMessage(graphene.Mutation):
    class Arguments:
        message_id = graphene.ID(required=True)

    Output = GroupMessagePayload

    async def mutate(root, info, message_id):
        ctx = info.context

        async def run():
            message = await group_message_service.delete_group_message(
                ctx["db"], message_id, ctx["user"].id, ctx["notifier"]
            )
            return message, "Message deleted"

        return await respond(GroupMessagePayload, "group_message", "deleteGroupMessage", run())


class Mutation(graphene.ObjectType):
    create_group = CreateGroup.Field()
    update_group = UpdateGroup.Field()
    delete_group = DeleteGroup.Field()
    transfer_group_ownership = TransferGroupOwnership.Field()
    add_group_members = AddGroupMembers.Field()
    remove_group_member = RemoveGroupMember.Field()
    leave_group = LeaveGroup.Field()
    make_group_admin = MakeGroupAdmin.Field()
    send_group_message = SendGroupMessage.Field()
    mark_group_message_as_read = MarkGroupMessageAsRead.Field()
    edit_group_message = EditGroupMessage.Field()
    delete_group_message = DeleteGroupMessage.Field()


schema = graphene.Schema(query=Query, mutation=Mutation)
