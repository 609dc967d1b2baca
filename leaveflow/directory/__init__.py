"""Directory module — Branch, Team, Employee reference data (read-only)."""

from leaveflow.directory.models import Branch, Employee, Team

__all__ = ["Branch", "Employee", "Team"]
