from sqlalchemy import Column, Integer, String, DateTime
from groupchat.db.database import Base

# Users are registered by the auth service; groups only reference them.
class User(Base):
    __tablename__ = "users"

    id        = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username  = Column(String(32), unique=True, nullable=False)
    avatar    = Column(String(256), nullable=True)        # avatar url
    bio       = Column(String(256), nullable=True)
    status    = Column(String(20), default="offline")     # online / offline
    last_seen = Column(DateTime, nullable=True)

    @property
    def is_online(self) -> bool:
        return self.status == "online"
