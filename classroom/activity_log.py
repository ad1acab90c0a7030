import logging

from django.db import DatabaseError, transaction

from .models import ActivityLog

logger = logging.getLogger(__name__)

# Action codes recorded in ActivityLog.action
NOTE_UPDATE = "NOTE_UPDATE"
NOTE_ADD_KNOWLEDGE = "NOTE_ADD_KNOWLEDGE"
DRAFT_UPDATE = "DRAFT_UPDATE"
DRAFT_ORGANIZE = "DRAFT_ORGANIZE"
DRAFT_SNAPSHOT = "DRAFT_SNAPSHOT"
ANNOTATION_UPDATE = "ANNOTATION_UPDATE"
ANNOTATION_DELETE = "ANNOTATION_DELETE"
TASK_START = "TASK_START"
TASK_COMPLETE = "TASK_COMPLETE"
SELECT_AI_OUTPUT = "SELECT_AI_OUTPUT"
COMPARE_AI_OUTPUTS = "COMPARE_AI_OUTPUTS"
TEACHER_REMINDER = "TEACHER_REMINDER"
FILE_UPLOAD = "FILE_UPLOAD"
FILE_UPLOAD_MULTIPLE = "FILE_UPLOAD_MULTIPLE"
FILE_DELETE = "FILE_DELETE"


def annotation_action(annotation_type):
    return f"ANNOTATION_{annotation_type}"


def log_activity(user, action, details=None):
    """Record an activity row. Failures are logged and swallowed so callers never fail on logging."""
    user_id = getattr(user, "pk", user)
    try:
        with transaction.atomic():
            return ActivityLog.objects.create(user_id=user_id, action=action, details=details or {})
    except DatabaseError as e:
        logger.warning(f"Failed to log activity {action} for user {user_id}: {e}")
        return None
