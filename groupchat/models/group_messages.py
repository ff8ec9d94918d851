from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from groupchat.db.database import Base

MESSAGE_TYPES = ("text", "image", "video", "audio", "file", "system")


class GroupMessage(Base):
    __tablename__ = "group_messages"
    __table_args__ = (
        Index("ix_group_messages_group_created", "group_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    group_id  = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    content = Column(Text, nullable=False, default="")

    # text / image / video / audio / file / system
    message_type = Column(String(16), nullable=False, default="text")

    # optional attachment
    media_url      = Column(String(512), nullable=True)
    media_type     = Column(String(128), nullable=True)
    media_filename = Column(String(256), nullable=True)
    media_size     = Column(Integer, nullable=True)

    reply_to_id = Column(Integer, ForeignKey("group_messages.id", ondelete="SET NULL"), nullable=True)

    is_edited  = Column(Boolean, nullable=False, default=False)
    edited_at  = Column(DateTime, nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    group    = relationship("Group")
    sender   = relationship("User", foreign_keys=[sender_id])
    reply_to = relationship("GroupMessage", remote_side=[id])
    read_by  = relationship(
        "GroupMessageRead",
        back_populates="message",
        order_by="GroupMessageRead.id",
        cascade="all, delete-orphan",
    )

    @property
    def group_name(self) -> str | None:
        return self.group.name if self.group else None

    @property
    def media(self) -> dict | None:
        if not self.media_url:
            return None
        return {
            "url": self.media_url,
            "type": self.media_type,
            "filename": self.media_filename,
            "size": self.media_size,
        }

    def is_read_by(self, user_id: int) -> bool:
        return any(r.user_id == user_id for r in self.read_by)


# read receipts, one row per (message, user)
class GroupMessageRead(Base):
    __tablename__ = "group_message_reads"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_group_message_read"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(Integer, ForeignKey("group_messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    read_at = Column(DateTime, nullable=False)

    message = relationship("GroupMessage", back_populates="read_by")
    user = relationship("User")
