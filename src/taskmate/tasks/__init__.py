"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus)
- task_store.py: SQLite-backed storage with dependency edges and cycle checks
- task_format.py: user-facing text rendering of tasks and task lists
- due_time.py: lenient parsing of due-time strings produced by the model
- task_reminder.py: polling loop that announces overdue / upcoming tasks
"""
