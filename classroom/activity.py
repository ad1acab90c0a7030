"""Activity classification behind the teacher dashboard.

Everything here is a pure function of its arguments (plus an explicit
``now``), so it works on model instances and on plain objects alike.
"""

import math
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from django.utils import timezone

ACTIVE = "active"
IDLE = "idle"
STUCK = "stuck"

IDLE_AFTER_MINUTES = 5
STUCK_AFTER_MINUTES = 10

COMPLETED = "COMPLETED"
IN_PROGRESS = "IN_PROGRESS"


def idle_minutes(last_active_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole minutes elapsed since ``last_active_at``, floored and never negative."""
    now = now or timezone.now()
    elapsed = (now - last_active_at).total_seconds()
    return max(0, math.floor(elapsed / 60))


def classify_activity(minutes: int) -> str:
    if minutes > STUCK_AFTER_MINUTES:
        return STUCK
    if minutes > IDLE_AFTER_MINUTES:
        return IDLE
    return ACTIVE


def compute_ai_ratio(student_length: int, ai_length: int) -> float:
    total = student_length + ai_length
    if total <= 0:
        return 0.0
    return ai_length / total


def content_ai_ratio(student_content: Optional[str], ai_content: Optional[str]) -> float:
    return compute_ai_ratio(len(student_content or ""), len(ai_content or ""))


def project_ai_ratio(rows: Iterable[Any]) -> float:
    """Unweighted mean of ai_ratio over completed rows; 0 when none are completed."""
    ratios = [row.ai_ratio for row in rows if row.status == COMPLETED]
    if not ratios:
        return 0.0
    return sum(ratios) / len(ratios)


def as_percent(ratio: float) -> int:
    # Half-up rounding, so 0.125 reports as 13.
    return int(math.floor(ratio * 100 + 0.5))


@dataclass
class StudentStatus:
    project_id: Any
    student: Dict[str, Any]
    project_title: str
    current_phase: int
    current_task: int
    total_tasks: int
    completed_tasks: int
    ai_ratio: int
    activity_status: str
    idle_minutes: int
    status: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "projectId": data["project_id"],
            "student": data["student"],
            "projectTitle": data["project_title"],
            "currentPhase": data["current_phase"],
            "currentTask": data["current_task"],
            "totalTasks": data["total_tasks"],
            "completedTasks": data["completed_tasks"],
            "aiRatio": data["ai_ratio"],
            "activityStatus": data["activity_status"],
            "idleMinutes": data["idle_minutes"],
            "status": data["status"],
        }


def _student_summary(user) -> Dict[str, Any]:
    return {"id": user.pk, "name": getattr(user, "name", ""), "username": user.username}


def summarize_project(project, rows: Optional[Iterable[Any]] = None, now: Optional[datetime] = None) -> StudentStatus:
    """Dashboard status for one project.

    Idle time is measured from the in-progress task's ``last_active_at``,
    falling back to ``project.updated_at`` when no task is in progress.
    """
    rows = list(rows if rows is not None else project.progress.all())
    current = next((row for row in rows if row.status == IN_PROGRESS), None)
    last_active = current.last_active_at if current is not None else project.updated_at
    minutes = idle_minutes(last_active, now)

    return StudentStatus(
        project_id=project.pk,
        student=_student_summary(project.user),
        project_title=project.title,
        current_phase=project.current_phase,
        current_task=project.current_task,
        total_tasks=len(project.template.tasks or []),
        completed_tasks=sum(1 for row in rows if row.status == COMPLETED),
        ai_ratio=as_percent(project_ai_ratio(rows)),
        activity_status=classify_activity(minutes),
        idle_minutes=minutes,
        status=project.status,
    )


def summarize_dashboard(statuses: List[StudentStatus]) -> Dict[str, Any]:
    return {
        "totalStudents": len(statuses),
        "activeCount": sum(1 for s in statuses if s.activity_status == ACTIVE),
        "idleCount": sum(1 for s in statuses if s.activity_status == IDLE),
        "stuckCount": sum(1 for s in statuses if s.activity_status == STUCK),
        "students": [s.to_dict() for s in statuses],
    }


def task_analytics(rows: Iterable[Any]) -> List[Dict[str, Any]]:
    """Per task index: completions, mean duration in minutes and mean AI ratio (percent).

    Only rows with both ``started_at`` and ``completed_at`` are counted.
    """
    stats = {}
    for row in rows:
        if not (row.started_at and row.completed_at):
            continue
        entry = stats.setdefault(row.task_index, {"count": 0, "seconds": 0.0, "ratio": 0.0})
        entry["count"] += 1
        entry["seconds"] += (row.completed_at - row.started_at).total_seconds()
        entry["ratio"] += row.ai_ratio

    return [
        {
            "taskIndex": index,
            "avgDurationMinutes": int(math.floor(entry["seconds"] / entry["count"] / 60 + 0.5)),
            "avgAiRatio": as_percent(entry["ratio"] / entry["count"]),
            "completedCount": entry["count"],
        }
        for index, entry in sorted(stats.items())
    ]
