"""
Core module for quizswarm
"""

from .utils import (
    cancel_tracked_tasks,
    create_tracked_task,
    wait_any_event,
)

__all__ = [
    'cancel_tracked_tasks',
    'create_tracked_task',
    'wait_any_event',
]
