from typing import Dict, List, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, validator
from taskflow.enums import TaskStatus, NotificationType

# =========================================================
# PYDANTIC SCHEMAS
# =========================================================

def as_utc(v):
    """Stored instants are naive UTC; send them with an explicit offset."""
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v

# User Schemas
class UserCreate(BaseModel):
    email: str
    password: str
    name: Optional[str] = None

    @validator('email')
    def normalize_email(cls, v):
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("Invalid email address")
        return v

    @validator('password')
    def password_length(cls, v):
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v

class UserLogin(BaseModel):
    email: str
    password: str

    @validator('email')
    def normalize_email(cls, v):
        return v.strip().lower()

class UserResponse(BaseModel):
    id: int
    email: str
    name: Optional[str]
    email_verified: bool
    created_at: datetime

    @validator('created_at')
    def created_at_utc(cls, v):
        return as_utc(v)

    class Config:
        from_attributes = True

class LoginResponse(BaseModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"

class RegisterResponse(BaseModel):
    success: bool
    message: str

# Task Schemas
class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    estimated_time: Optional[int] = None

    @validator('title')
    def title_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v

    @validator('description')
    def blank_description_is_none(cls, v):
        if v is None:
            return None
        return v.strip() or None

    @validator('estimated_time')
    def estimate_positive(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Estimated time must be a positive number of minutes")
        return v

class TaskUpdate(TaskCreate):
    title: Optional[str] = None

    @validator('title')
    def title_required(cls, v):
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        return v

class TaskTimeAction(BaseModel):
    action: str
    seconds: Optional[int] = None

    @validator('seconds')
    def seconds_non_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("Seconds must be non-negative")
        return v

class TimerResponse(BaseModel):
    elapsed_seconds: int
    total_seconds: int
    remaining_seconds: int
    remaining_display: str
    phase: str
    two_minute_warning: bool

class TaskResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    status: TaskStatus
    estimated_time: Optional[int]
    time_spent: int
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    timer: Optional[TimerResponse] = None

    @validator('started_at', 'completed_at', 'created_at', 'updated_at')
    def instants_utc(cls, v):
        return as_utc(v)

    class Config:
        from_attributes = True

class CheckResponse(BaseModel):
    success: bool
    result: Dict[str, int]

# Notification Schemas
class NotificationResponse(BaseModel):
    id: int
    task_id: Optional[int]
    type: NotificationType
    title: str
    message: str
    read: bool
    created_at: datetime

    @validator('created_at')
    def created_at_utc(cls, v):
        return as_utc(v)

    class Config:
        from_attributes = True

class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int
    unread: int

class SuccessResponse(BaseModel):
    success: bool = True
