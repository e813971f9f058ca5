from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import desc
from sqlalchemy.orm import Session
from taskflow.dependencies import get_db, get_current_user
from taskflow.models import Notification, User
from taskflow.schemas import NotificationListResponse, SuccessResponse

router = APIRouter()

NOTIFICATION_PAGE_SIZE = 50

def _get_owned_notification(db: Session, current_user: User, notification_id: int) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == current_user.id
    ).first()
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification

# =========================================================
# NOTIFICATION ENDPOINTS
# =========================================================
@router.get("/", response_model=NotificationListResponse)
def get_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    notifications = db.query(Notification).filter(
        Notification.user_id == current_user.id
    ).order_by(desc(Notification.created_at), desc(Notification.id)).limit(NOTIFICATION_PAGE_SIZE).all()

    return {
        "notifications": notifications,
        "total": len(notifications),
        "unread": sum(1 for n in notifications if not n.read)
    }

@router.post("/read-all", response_model=SuccessResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    db.query(Notification).filter(
        Notification.user_id == current_user.id,
        Notification.read.is_(False)
    ).update({Notification.read: True}, synchronize_session=False)
    db.commit()
    return {"success": True}

@router.post("/{notification_id}/read", response_model=SuccessResponse)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    notification = _get_owned_notification(db, current_user, notification_id)
    notification.read = True
    db.commit()
    return {"success": True}

@router.delete("/{notification_id}", response_model=SuccessResponse)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    notification = _get_owned_notification(db, current_user, notification_id)
    db.delete(notification)
    db.commit()
    return {"success": True}
