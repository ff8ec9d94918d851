import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from groupchat.core import errors
from groupchat.models.group_messages import MESSAGE_TYPES, GroupMessage, GroupMessageRead
from groupchat.schemas.group_messages import GroupMessageResponse, MediaInfo
from groupchat.services.group_service import get_group_or_404, parse_id, require_member
from groupchat.websocket.manager import Notifier, emit_to_members

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


def message_payload(message: GroupMessage) -> dict:
    return GroupMessageResponse.model_validate(message).model_dump(mode="json")


def get_message_or_404(db: Session, message_id) -> GroupMessage:
    message = db.get(GroupMessage, parse_id(message_id, "messageId"))
    if not message or message.is_deleted:
        raise errors.NotFoundError("Message not found")
    return message


def _parse_media(media) -> Optional[MediaInfo]:
    if media is None:
        return None
    try:
        return MediaInfo.model_validate(dict(media))
    except (PydanticValidationError, TypeError, ValueError) as e:
        raise errors.ValidationError(f"Invalid media: {e}")


# ==================== sending ====================

async def send_group_message(
    db: Session,
    group_id,
    sender_id: int,
    notifier: Notifier,
    content: Optional[str] = None,
    message_type: str = "text",
    media=None,
    reply_to=None,
) -> GroupMessage:
    """Store a message, refresh the group's last-message summary, push to every member"""
    group = get_group_or_404(db, group_id)
    require_member(group, sender_id)

    message_type = message_type or "text"
    if message_type not in MESSAGE_TYPES:
        raise errors.ValidationError(f"Unknown message type: {message_type}")

    content = (content or "").strip()
    media_info = _parse_media(media)
    if message_type == "text" and not content:
        raise errors.ValidationError("Message content is required")
    if not content and media_info is None:
        raise errors.ValidationError(f"A {message_type} message needs content or media")

    reply_to_id = None
    if reply_to is not None:
        target = db.get(GroupMessage, parse_id(reply_to, "replyTo"))
        if target is None or target.group_id != group.id:
            raise errors.ValidationError("Reply target must be a message in the same group")
        reply_to_id = target.id

    now = datetime.now()
    message = GroupMessage(
        group_id=group.id,
        sender_id=sender_id,
        content=content,
        message_type=message_type,
        reply_to_id=reply_to_id,
        created_at=now,
    )
    if media_info is not None:
        message.media_url = media_info.url
        message.media_type = media_info.type
        message.media_filename = media_info.filename
        message.media_size = media_info.size
    db.add(message)

    # best-effort summary, overwritten on every send
    group.last_message_content = content or f"Sent a {message_type}"
    group.last_message_sender_id = sender_id
    group.last_message_at = now
    group.updated_at = now

    db.commit()
    db.refresh(message)
    logger.info(f"User {sender_id} sent {message_type} message {message.id} to group {group.id}")

    await emit_to_members(notifier, group.member_ids, "newGroupMessage", message_payload(message))
    return message


# ==================== history ====================

def get_group_messages(db: Session, group_id, user_id: int, limit: int | None = DEFAULT_PAGE_SIZE, offset: int | None = 0) -> list[GroupMessage]:
    """
    One page of a group's history, oldest first within the page.

    The store is read newest-first so that offset 0 is always the latest
    page; offsets drift when messages arrive between calls.
    """
    group = get_group_or_404(db, group_id)
    if group.is_private:
        require_member(group, user_id)
    # explicit nulls from GraphQL mean "use the default"
    limit = DEFAULT_PAGE_SIZE if limit is None else limit
    offset = 0 if offset is None else offset
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise errors.ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise errors.ValidationError("offset must not be negative")

    msgs = (
        db.query(GroupMessage)
        .filter(GroupMessage.group_id == group.id, GroupMessage.is_deleted.is_(False))
        .order_by(desc(GroupMessage.created_at), desc(GroupMessage.id))
        .offset(offset)
        .limit(limit)
        .all()
    )
    msgs.reverse()
    return msgs


def get_group_unread_count(db: Session, group_id, user_id: int) -> int:
    """Messages from others that the user has no read receipt for"""
    group = get_group_or_404(db, group_id)
    require_member(group, user_id)

    already_read = (
        select(GroupMessageRead.id)
        .where(
            GroupMessageRead.message_id == GroupMessage.id,
            GroupMessageRead.user_id == user_id,
        )
        .exists()
    )
    count = db.scalar(
        select(func.count(GroupMessage.id)).where(
            GroupMessage.group_id == group.id,
            GroupMessage.sender_id != user_id,
            GroupMessage.is_deleted.is_(False),
            ~already_read,
        )
    )
    return count or 0


# ==================== receipts / edits ====================

def mark_group_message_as_read(db: Session, message_id, reader_id: int) -> GroupMessage:
    """Add a read receipt once per reader"""
    message = get_message_or_404(db, message_id)
    require_member(message.group, reader_id)

    if not message.is_read_by(reader_id):
        message.read_by.append(GroupMessageRead(user_id=reader_id, read_at=datetime.now()))
        db.commit()
        db.refresh(message)
    return message


async def edit_group_message(db: Session, message_id, content: Optional[str], actor_id: int, notifier: Notifier) -> GroupMessage:
    message = get_message_or_404(db, message_id)
    if message.sender_id != actor_id:
        raise errors.AuthorizationError("Only the sender can edit this message")

    content = (content or "").strip()
    if not content:
        raise errors.ValidationError("Message content is required")

    message.content = content
    message.is_edited = True
    message.edited_at = datetime.now()
    db.commit()
    db.refresh(message)
    logger.info(f"Message {message.id} edited by user {actor_id}")

    await emit_to_members(notifier, message.group.member_ids, "groupMessageEdited", message_payload(message))
    return message


async def delete_group_message(db: Session, message_id, actor_id: int, notifier: Notifier) -> GroupMessage:
    """Soft delete by the sender or a group admin"""
    message = get_message_or_404(db, message_id)
    group = message.group
    if message.sender_id != actor_id and not group.is_admin(actor_id):
        raise errors.AuthorizationError("Only the sender or an admin can delete this message")

    message.is_deleted = True
    message.deleted_at = datetime.now()
    db.commit()
    db.refresh(message)
    logger.info(f"Message {message.id} deleted by user {actor_id}")

    await emit_to_members(notifier, group.member_ids, "groupMessageDeleted", {
        "group_id": group.id,
        "message_id": message.id,
    })
    return message
