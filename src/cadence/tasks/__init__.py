"""
Task series subsystem.

Components:
- task_models.py: data structures (RecurrenceRule, TaskTemplate, Series, Instance, Task)
- recurrence.py: calendar expansion of a rule into candidate occurrences
- materializer.py: idempotent persistence of candidate occurrences
- series_controller.py: series lifecycle (create / pause / resume / update / delete)
- overdue.py: overdue predicate for series, instances and standalone tasks
- task_store.py: SQLite-backed storage + query/update helpers
- task_scheduler.py: polling worker that keeps lookahead coverage for active series
- task_api.py: payload parsing helpers used by the rest of the app
"""
