import enum
# =========================================================
# ENUMS
# =========================================================
class TaskStatus(str, enum.Enum):
    pending = "PENDING"
    in_progress = "IN_PROGRESS"
    completed = "COMPLETED"

class NotificationType(str, enum.Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"

class TimerAction(str, enum.Enum):
    start = "start"
    complete = "complete"
    add = "add"
