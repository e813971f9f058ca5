from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum as SQLEnum, CheckConstraint, Index
from sqlalchemy.orm import relationship
from taskflow.database import Base
from taskflow.enums import TaskStatus, NotificationType
from taskflow.timer import utcnow, compute_timer

# =========================================================
# DATABASE MODELS
# =========================================================
class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100))
    email_verified = Column(Boolean, nullable=False, default=False)
    email_token = Column(String(64), index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    auth_credential = relationship("AuthCredential", back_populates="user", uselist=False, cascade="all, delete-orphan")
    tasks = relationship("Task", back_populates="user")
    notifications = relationship("Notification", back_populates="user")

class AuthCredential(Base):
    __tablename__ = "auth_credentials"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="auth_credential")

class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint("estimated_time IS NULL OR estimated_time > 0", name="ck_tasks_estimated_time_positive"),
        CheckConstraint("time_spent >= 0", name="ck_tasks_time_spent_non_negative"),
        Index("ix_tasks_user_status", "user_id", "status"),
    )
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    status = Column(SQLEnum(TaskStatus), nullable=False, default=TaskStatus.pending)
    estimated_time = Column(Integer)  # minutes
    time_spent = Column(Integer, nullable=False, default=0)  # seconds
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="tasks")
    notifications = relationship("Notification", back_populates="task", passive_deletes=True)

    @property
    def timer(self):
        if self.status != TaskStatus.in_progress:
            return None
        state = compute_timer(self.started_at, self.estimated_time)
        return state.as_dict() if state else None

class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_dedupe", "user_id", "title", "created_at"),
    )
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="SET NULL"))
    type = Column(SQLEnum(NotificationType), nullable=False, default=NotificationType.info)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="notifications")
    task = relationship("Task", back_populates="notifications")

class TokenBlacklist(Base):
    __tablename__ = "token_blacklist"
    id = Column(Integer, primary_key=True)
    token = Column(Text, unique=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)
