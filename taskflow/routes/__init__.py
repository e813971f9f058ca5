from fastapi import APIRouter
from . import auth, tasks, notifications, prometheus

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
router.include_router(prometheus.router, prefix="/metrics", tags=["Metrics"])
