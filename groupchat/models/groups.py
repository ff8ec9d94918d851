from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship
from groupchat.db.database import Base

# group table: basic info plus the last-message summary
class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(50), nullable=False, index=True)
    description = Column(String(256), nullable=False, default="")
    group_image = Column(String(512), nullable=False, default="")
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    is_private = Column(Boolean, nullable=False, default=False)
    max_members = Column(Integer, nullable=False, default=256)

    # denormalized copy of the latest message, overwritten on every send
    last_message_content = Column(Text, nullable=True)
    last_message_sender_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    last_message_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # join order is the member order
    members = relationship(
        "GroupMember",
        back_populates="group",
        order_by="GroupMember.id",
        cascade="all, delete-orphan",
    )
    creator = relationship("User", foreign_keys=[created_by])
    last_message_sender = relationship("User", foreign_keys=[last_message_sender_id])

    @property
    def member_ids(self) -> list[int]:
        return [m.user_id for m in self.members]

    @property
    def admin_ids(self) -> list[int]:
        return [m.user_id for m in self.members if m.is_admin]

    @property
    def member_users(self):
        return [m.user for m in self.members]

    @property
    def admin_users(self):
        return [m.user for m in self.members if m.is_admin]

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def last_message(self) -> dict | None:
        if self.last_message_at is None:
            return None
        return {
            "content": self.last_message_content,
            "sender": self.last_message_sender,
            "timestamp": self.last_message_at,
        }

    def membership(self, user_id: int):
        for m in self.members:
            if m.user_id == user_id:
                return m
        return None

    def is_member(self, user_id: int) -> bool:
        return self.membership(user_id) is not None

    def is_admin(self, user_id: int) -> bool:
        m = self.membership(user_id)
        return m is not None and m.is_admin
