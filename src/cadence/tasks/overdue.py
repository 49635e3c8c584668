# src/cadence/tasks/overdue.py

from __future__ import annotations

from datetime import datetime, timedelta

from .task_models import Frequency, Instance, Series, Task, TaskStatus

DEFAULT_GRACE = timedelta(days=1)


def is_overdue(task: Series | Instance | Task, now: datetime, *, grace: timedelta = DEFAULT_GRACE) -> bool:
    """
    Overdue policy. Asymmetric on purpose:

    - completed tasks are never overdue
    - a series is never overdue itself; only its instances are judged
    - standalone tasks and daily instances are overdue once end_at is more than
      `grace` in the past
    - weekly and monthly instances are not flagged here
    """
    if task.status == TaskStatus.COMPLETED:
        return False

    if isinstance(task, Series):
        return False

    if isinstance(task, Instance):
        if task.frequency is not Frequency.DAILY:
            return False
        return task.end_at < now - grace

    return task.end_at < now - grace
