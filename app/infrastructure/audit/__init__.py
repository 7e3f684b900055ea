"""
Operational log persistence.

Batch runs record their milestones in the system_log table through the
shared system_logger instance.
"""

from app.infrastructure.audit.system_log import SystemLogger, system_logger

__all__ = ["SystemLogger", "system_logger"]
