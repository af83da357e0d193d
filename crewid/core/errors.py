from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from crewid.core.ops_log import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class CrewIdError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        return f"{self.code}: {self.user_message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


class ConfigError(CrewIdError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class InvalidInputError(CrewIdError):
    def __init__(self, user_message: str = "Invalid worker profile.", **ctx: Any):
        super().__init__("invalid_input", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class StorageUnavailableError(CrewIdError):
    def __init__(self, user_message: str = "Credential storage is unavailable.", **ctx: Any):
        super().__init__("storage_unavailable", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)
