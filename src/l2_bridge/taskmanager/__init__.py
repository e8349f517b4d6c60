"""Task manager — periodic background jobs."""

from l2_bridge.taskmanager.manager import CronJob, TaskManager

__all__ = ["CronJob", "TaskManager"]
