"""TaskPilot: single-instance arbitration for the TaskPilot background service."""

__version__ = "0.1.0"
