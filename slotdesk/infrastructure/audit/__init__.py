"""
Activity logging infrastructure.

Records who did what to which entity in the `activity_logs` table.
"""

from slotdesk.infrastructure.audit.activity_logger import ActivityLogger, activity_logger

__all__ = ["ActivityLogger", "activity_logger"]
