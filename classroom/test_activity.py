from datetime import datetime, timedelta, timezone as dt_timezone
from types import SimpleNamespace

from django.test import SimpleTestCase

from .activity import (
    ACTIVE,
    IDLE,
    STUCK,
    as_percent,
    classify_activity,
    compute_ai_ratio,
    content_ai_ratio,
    idle_minutes,
    project_ai_ratio,
    summarize_dashboard,
    summarize_project,
    task_analytics,
)

NOW = datetime(2025, 3, 1, 10, 0, tzinfo=dt_timezone.utc)


def row(task_index, status, ai_ratio=0.0, last_active_at=NOW, started_at=None, completed_at=None):
    return SimpleNamespace(
        task_index=task_index,
        status=status,
        ai_ratio=ai_ratio,
        last_active_at=last_active_at,
        started_at=started_at,
        completed_at=completed_at,
    )


def project(updated_at=NOW, tasks=3):
    return SimpleNamespace(
        pk=7,
        user=SimpleNamespace(pk=3, name="Mia", username="mia"),
        title="Lighthouse",
        current_phase=1,
        current_task=1,
        template=SimpleNamespace(tasks=[{"phase": 1}] * tasks),
        status="IN_PROGRESS",
        updated_at=updated_at,
    )


class AiRatioTests(SimpleTestCase):
    def test_ratio_is_ai_share_of_total_length(self):
        self.assertAlmostEqual(compute_ai_ratio(40, 60), 0.6)
        self.assertAlmostEqual(content_ai_ratio("s" * 40, "a" * 60), 0.6)

    def test_empty_content_is_zero(self):
        self.assertEqual(compute_ai_ratio(0, 0), 0.0)
        self.assertEqual(content_ai_ratio(None, ""), 0.0)

    def test_percent_rounds_half_up(self):
        self.assertEqual(as_percent(0.125), 13)
        self.assertEqual(as_percent(0.6), 60)
        self.assertEqual(as_percent(0.0), 0)

    def test_project_ratio_averages_completed_tasks_only(self):
        rows = [
            row(0, "COMPLETED", 0.2),
            row(1, "COMPLETED", 0.6),
            row(2, "IN_PROGRESS", 0.9),
        ]
        self.assertAlmostEqual(project_ai_ratio(rows), 0.4)
        self.assertEqual(project_ai_ratio([row(0, "PENDING", 0.5)]), 0.0)


class ActivityClassificationTests(SimpleTestCase):
    def test_idle_minutes_floor_and_never_negative(self):
        self.assertEqual(idle_minutes(NOW - timedelta(minutes=7, seconds=59), NOW), 7)
        self.assertEqual(idle_minutes(NOW + timedelta(minutes=2), NOW), 0)

    def test_boundaries(self):
        self.assertEqual(classify_activity(0), ACTIVE)
        self.assertEqual(classify_activity(5), ACTIVE)
        self.assertEqual(classify_activity(6), IDLE)
        self.assertEqual(classify_activity(10), IDLE)
        self.assertEqual(classify_activity(11), STUCK)


class DashboardSummaryTests(SimpleTestCase):
    def test_idle_time_comes_from_in_progress_task(self):
        rows = [
            row(0, "COMPLETED", 0.25),
            row(1, "IN_PROGRESS", last_active_at=NOW - timedelta(minutes=7)),
            row(2, "PENDING"),
        ]

        status = summarize_project(project(updated_at=NOW), rows, now=NOW)

        self.assertEqual(status.activity_status, IDLE)
        self.assertEqual(status.idle_minutes, 7)
        self.assertEqual(status.completed_tasks, 1)
        self.assertEqual(status.total_tasks, 3)
        self.assertEqual(status.ai_ratio, 25)
        self.assertEqual(status.student, {"id": 3, "name": "Mia", "username": "mia"})

    def test_falls_back_to_project_update_time(self):
        rows = [row(0, "COMPLETED"), row(1, "COMPLETED")]
        status = summarize_project(project(updated_at=NOW - timedelta(minutes=30), tasks=2), rows, now=NOW)
        self.assertEqual(status.activity_status, STUCK)
        self.assertEqual(status.idle_minutes, 30)

    def test_dashboard_counts_each_class(self):
        statuses = [
            summarize_project(project(), [row(0, "IN_PROGRESS", last_active_at=NOW - timedelta(minutes=m))], now=NOW)
            for m in (1, 6, 12, 20)
        ]

        dashboard = summarize_dashboard(statuses)

        self.assertEqual(dashboard["totalStudents"], 4)
        self.assertEqual(
            (dashboard["activeCount"], dashboard["idleCount"], dashboard["stuckCount"]),
            (1, 1, 2),
        )
        self.assertEqual(dashboard["students"][1]["activityStatus"], IDLE)
        self.assertEqual(dashboard["students"][1]["idleMinutes"], 6)


class TaskAnalyticsTests(SimpleTestCase):
    def test_groups_by_task_index(self):
        rows = [
            row(1, "COMPLETED", 0.5, started_at=NOW, completed_at=NOW + timedelta(minutes=10)),
            row(0, "COMPLETED", 0.2, started_at=NOW, completed_at=NOW + timedelta(minutes=20)),
            row(0, "COMPLETED", 0.4, started_at=NOW, completed_at=NOW + timedelta(minutes=30)),
            row(2, "IN_PROGRESS", 0.9, started_at=NOW),
        ]

        self.assertEqual(task_analytics(rows), [
            {"taskIndex": 0, "avgDurationMinutes": 25, "avgAiRatio": 30, "completedCount": 2},
            {"taskIndex": 1, "avgDurationMinutes": 10, "avgAiRatio": 50, "completedCount": 1},
        ])
