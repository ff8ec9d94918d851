import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, desc, func, or_, select
from sqlalchemy.orm import Session

from groupchat.core import errors
from groupchat.core.config import settings
from groupchat.models.group_members import GroupMember
from groupchat.models.group_messages import GroupMessage, GroupMessageRead
from groupchat.models.groups import Group
from groupchat.models.user import User
from groupchat.schemas.groups import GroupResponse
from groupchat.services.media_service import LocalMediaStorage, upload_group_image
from groupchat.websocket.manager import Notifier, emit_to_members

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 256
SEARCH_DEFAULT_LIMIT = 10
SEARCH_MAX_LIMIT = 50


# ==================== helpers ====================

def parse_id(value, field: str = "id") -> int:
    """GraphQL IDs arrive as strings; only positive integers are valid"""
    if isinstance(value, bool):
        raise errors.ValidationError(f"Invalid {field}: {value!r}")
    if isinstance(value, int):
        parsed = value
    else:
        text = str(value).strip()
        if not text.isdigit():
            raise errors.ValidationError(f"Invalid {field}: {value!r}")
        parsed = int(text)
    if parsed <= 0:
        raise errors.ValidationError(f"Invalid {field}: {value!r}")
    return parsed


def parse_member_ids(values: Iterable) -> list[int]:
    """Parse and dedupe, keeping first-seen order"""
    parsed = []
    for value in values:
        try:
            parsed.append(parse_id(value, "member id"))
        except errors.ValidationError:
            raise errors.ValidationError("Invalid member IDs provided")
    return list(dict.fromkeys(parsed))


def get_group_or_404(db: Session, group_id) -> Group:
    group = db.get(Group, parse_id(group_id, "groupId"))
    if not group:
        raise errors.NotFoundError("Group not found")
    return group


def require_member(group: Group, user_id: int) -> None:
    if not group.is_member(user_id):
        raise errors.AuthorizationError("You are not a member of this group")


def group_payload(group: Group) -> dict:
    return GroupResponse.model_validate(group).model_dump(mode="json")


def _ensure_users_exist(db: Session, user_ids: list[int]) -> None:
    if not user_ids:
        return
    found = set(db.scalars(select(User.id).where(User.id.in_(user_ids))).all())
    missing = [uid for uid in user_ids if uid not in found]
    if missing:
        raise errors.ValidationError(f"Unknown member IDs: {', '.join(str(m) for m in missing)}")


def _validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise errors.ValidationError("Group name is required")
    if len(name) > NAME_MAX_LENGTH:
        raise errors.ValidationError(f"Group name must be at most {NAME_MAX_LENGTH} characters")
    return name


def _validate_description(description: Optional[str]) -> str:
    description = description or ""
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise errors.ValidationError(f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters")
    return description


# ==================== queries ====================

def get_user_groups(db: Session, user_id: int) -> list[Group]:
    """Groups the user belongs to, most recently active first"""
    stmt = (
        select(Group)
        .join(GroupMember, Group.id == GroupMember.group_id)
        .where(GroupMember.user_id == user_id)
        .order_by(desc(Group.updated_at), desc(Group.id))
    )
    return list(db.scalars(stmt).all())


def get_group_details(db: Session, group_id, user_id: int) -> Group:
    group = get_group_or_404(db, group_id)
    if group.is_private:
        require_member(group, user_id)
    return group


def search_groups(db: Session, query: str, limit: int | None = SEARCH_DEFAULT_LIMIT) -> list[Group]:
    """Public groups whose name or description contains ``query``"""
    query = (query or "").strip()
    if not query:
        raise errors.ValidationError("Search query is required")
    if limit is None:
        limit = SEARCH_DEFAULT_LIMIT
    if limit < 1 or limit > SEARCH_MAX_LIMIT:
        raise errors.ValidationError(f"limit must be between 1 and {SEARCH_MAX_LIMIT}")

    needle = query.lower()
    stmt = (
        select(Group)
        .where(
            Group.is_private.is_(False),
            or_(
                func.lower(Group.name).contains(needle, autoescape=True),
                func.lower(Group.description).contains(needle, autoescape=True),
            ),
        )
        .order_by(desc(Group.updated_at), desc(Group.id))
        .limit(limit)
    )
    return list(db.scalars(stmt).all())


def get_member_ids(db: Session, group_id: int) -> list[int]:
    stmt = (
        select(GroupMember.user_id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.id)
    )
    return list(db.scalars(stmt).all())


# ==================== group management ====================

async def create_group(
    db: Session,
    creator_id: int,
    notifier: Notifier,
    name: str,
    members: list,
    description: Optional[str] = None,
    is_private: bool = False,
    max_members: Optional[int] = None,
    image: Optional[bytes] = None,
    storage: Optional[LocalMediaStorage] = None,
) -> Group:
    """Create a group; the creator is always a member and the first admin"""
    name = _validate_name(name)
    description = _validate_description(description)
    if not members:
        raise errors.ValidationError("At least one member is required")
    member_ids = parse_member_ids(members)

    if max_members is None:
        max_members = settings.GROUP_MAX_MEMBERS
    if max_members < 1:
        raise errors.ValidationError("maxMembers must be a positive number")

    all_ids = list(dict.fromkeys([creator_id, *member_ids]))
    if len(all_ids) > max_members:
        raise errors.CapacityError(f"Cannot exceed maximum members limit of {max_members}")
    _ensure_users_exist(db, all_ids)

    # upload before any write so a failed upload leaves nothing behind
    group_image = ""
    if image is not None:
        group_image = upload_group_image(image, storage)

    now = datetime.now()
    group = Group(
        name=name,
        description=description,
        group_image=group_image,
        created_by=creator_id,
        is_private=bool(is_private),
        max_members=max_members,
    )
    group.members = [
        GroupMember(user_id=uid, is_admin=(uid == creator_id), joined_at=now)
        for uid in all_ids
    ]
    db.add(group)
    db.commit()
    db.refresh(group)
    logger.info(f"Group {group.id} created by user {creator_id} with {len(all_ids)} members")

    await emit_to_members(notifier, group.member_ids, "groupCreated", group_payload(group))
    return group


async def update_group(
    db: Session,
    group_id,
    actor_id: int,
    notifier: Notifier,
    name: Optional[str] = None,
    description: Optional[str] = None,
    group_image: Optional[str] = None,
) -> Group:
    """Partial update of name / description / image (admins only)"""
    group = get_group_or_404(db, group_id)
    if not group.is_admin(actor_id):
        raise errors.AuthorizationError("Only admins can update group")

    if name is not None:
        name = _validate_name(name)
    if description is not None:
        description = _validate_description(description)

    if name is not None:
        group.name = name
    if description is not None:
        group.description = description
    if group_image is not None:
        group.group_image = group_image

    db.commit()
    db.refresh(group)
    logger.info(f"Group {group.id} updated by user {actor_id}")

    await emit_to_members(notifier, group.member_ids, "groupUpdated", group_payload(group))
    return group


async def delete_group(db: Session, group_id, actor_id: int, notifier: Notifier) -> int:
    """Delete the group with all its messages (creator only)"""
    group = get_group_or_404(db, group_id)
    if group.created_by != actor_id:
        raise errors.AuthorizationError("Only group creator can delete the group")

    deleted_id = group.id
    member_ids = list(group.member_ids)

    message_ids = select(GroupMessage.id).where(GroupMessage.group_id == deleted_id)
    db.execute(delete(GroupMessageRead).where(GroupMessageRead.message_id.in_(message_ids)))
    db.query(GroupMessage).filter(GroupMessage.group_id == deleted_id).delete(synchronize_session=False)
    db.delete(group)
    db.commit()
    logger.info(f"Group {deleted_id} deleted by user {actor_id}")

    await emit_to_members(notifier, member_ids, "groupDeleted", {"group_id": deleted_id})
    return deleted_id


async def transfer_group_ownership(db: Session, group_id, new_owner_id, actor_id: int, notifier: Notifier) -> Group:
    """Hand the creator role to another member; the previous creator stays an admin"""
    group = get_group_or_404(db, group_id)
    new_owner_id = parse_id(new_owner_id, "newOwnerId")
    if group.created_by != actor_id:
        raise errors.AuthorizationError("Only group creator can transfer ownership")
    if new_owner_id == group.created_by:
        raise errors.ValidationError("User already owns this group")

    membership = group.membership(new_owner_id)
    if membership is None:
        raise errors.NotFoundError("User is not a member of this group")

    previous_owner = group.created_by
    membership.is_admin = True
    group.created_by = new_owner_id
    db.commit()
    db.refresh(group)
    logger.info(f"Group {group.id} ownership transferred {previous_owner} -> {new_owner_id}")

    await emit_to_members(notifier, group.member_ids, "groupOwnershipTransferred", {
        "group": group_payload(group),
        "previous_owner": previous_owner,
        "new_owner": new_owner_id,
    })
    return group


# ==================== membership ====================

async def add_group_members(db: Session, group_id, member_ids: list, actor_id: int, notifier: Notifier) -> tuple[Group, list[int]]:
    """Add members not already present (admins only); returns the group and who was added"""
    group = get_group_or_404(db, group_id)
    if not group.is_admin(actor_id):
        raise errors.AuthorizationError("Only admins can add members")
    if not member_ids:
        raise errors.ValidationError("At least one member is required")

    requested = parse_member_ids(member_ids)
    current = set(group.member_ids)
    new_ids = [uid for uid in requested if uid not in current]
    if len(current) + len(new_ids) > group.max_members:
        raise errors.CapacityError(f"Cannot exceed maximum members limit of {group.max_members}")
    _ensure_users_exist(db, new_ids)

    now = datetime.now()
    for uid in new_ids:
        group.members.append(GroupMember(user_id=uid, is_admin=False, joined_at=now))
    group.updated_at = now
    db.commit()
    db.refresh(group)
    logger.info(f"User {actor_id} added {new_ids} to group {group.id}")

    await emit_to_members(notifier, group.member_ids, "groupMembersAdded", {
        "group": group_payload(group),
        "new_members": new_ids,
    })
    return group, new_ids


async def remove_group_member(db: Session, group_id, member_id, actor_id: int, notifier: Notifier) -> Group:
    """Remove a member: admins may remove anyone but the creator, members may remove themselves"""
    group = get_group_or_404(db, group_id)
    member_id = parse_id(member_id, "memberId")

    if member_id == group.created_by:
        raise errors.InvariantError("Cannot remove group creator")
    if not group.is_admin(actor_id) and actor_id != member_id:
        raise errors.AuthorizationError("Only admins can remove members")

    membership = group.membership(member_id)
    if membership is None:
        raise errors.NotFoundError("User is not a member of this group")

    group.members.remove(membership)
    group.updated_at = datetime.now()
    db.commit()
    db.refresh(group)
    logger.info(f"User {member_id} removed from group {group.id} by user {actor_id}")

    payload = group_payload(group)
    await emit_to_members(notifier, group.member_ids, "groupMemberRemoved", {
        "group": payload,
        "removed_member": member_id,
    })
    await notifier.emit(member_id, "removedFromGroup", {"group": payload})
    return group


async def leave_group(db: Session, group_id, actor_id: int, notifier: Notifier) -> Group:
    group = get_group_or_404(db, group_id)
    if group.created_by == actor_id:
        raise errors.InvariantError("Group creator cannot leave. Transfer ownership first or delete the group.")

    membership = group.membership(actor_id)
    if membership is None:
        raise errors.NotFoundError("You are not a member of this group")

    group.members.remove(membership)
    group.updated_at = datetime.now()
    db.commit()
    db.refresh(group)
    logger.info(f"User {actor_id} left group {group.id}")

    await emit_to_members(notifier, group.member_ids, "groupMemberLeft", {
        "group": group_payload(group),
        "left_member": actor_id,
    })
    return group


async def make_group_admin(db: Session, group_id, member_id, actor_id: int, notifier: Notifier) -> Group:
    """Promote a member; promoting an admin again is a no-op"""
    group = get_group_or_404(db, group_id)
    member_id = parse_id(member_id, "memberId")
    if not group.is_admin(actor_id):
        raise errors.AuthorizationError("Only admins can promote members")

    membership = group.membership(member_id)
    if membership is None:
        raise errors.NotFoundError("User is not a member of this group")

    if not membership.is_admin:
        membership.is_admin = True
        db.commit()
        db.refresh(group)
        logger.info(f"User {member_id} promoted to admin of group {group.id} by user {actor_id}")

    await emit_to_members(notifier, group.member_ids, "groupAdminAdded", {
        "group": group_payload(group),
        "new_admin": member_id,
    })
    return group
