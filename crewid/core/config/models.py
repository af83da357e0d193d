from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class IdentityConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = Field(default=1, ge=1, le=1)
    card_id_prefix: str = Field(default="TSL", min_length=1, max_length=8)
    issuer_label: str = "The Solutionist"
    payload_version: str = "2.0"
    unassigned_project_label: str = "Unassigned"
    state_dir: str = "data/identity"
    backup_keep: int = Field(default=20, ge=1, le=200)
    lock_timeout_seconds: float = Field(default=5.0, gt=0, le=120)
    stale_lock_seconds: float = Field(default=30.0, gt=0, le=3600)
    log_level: str = "INFO"

    @field_validator("card_id_prefix")
    @classmethod
    def _prefix_alnum(cls, v: str) -> str:
        if not v.isalnum():
            raise ValueError("card_id_prefix must be alphanumeric")
        return v.upper()

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("log_level must be DEBUG, INFO, WARNING, ERROR or CRITICAL")
        return v


class CrewIdConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    identity: IdentityConfigFile = Field(default_factory=IdentityConfigFile)
