"""TaskPilot errors."""


class TaskPilotError(Exception):
    """Base exception for TaskPilot errors."""


class ArbitrationError(TaskPilotError):
    """Raised when a process can neither become main nor attach to one."""


class RoleError(TaskPilotError):
    """Raised on an illegal instance role transition."""


class ConfigError(TaskPilotError):
    """Raised when the configuration file is invalid."""
