"""
Models for stack, wait and log-capture configuration.
"""
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, field_validator

from .stack_state import ServiceStatus


class ComposeConfig(BaseModel):
    """
    Definition of one Compose stack.
    The order of ``compose_files`` is significant: later files override earlier ones.
    File paths are made absolute against the current directory on construction.
    """
    model_config = ConfigDict(frozen=True)

    compose_files: List[Path]
    env_files: List[Path] = []
    project_name: str
    stack_name: str
    environment: Dict[str, str] = {}

    @field_validator("compose_files")
    @classmethod
    def _require_compose_file(cls, value: List[Path]) -> List[Path]:
        if not value:
            raise ValueError("At least one compose file must be specified")
        return [p.absolute() for p in value]

    @field_validator("env_files")
    @classmethod
    def _absolute_paths(cls, value: List[Path]) -> List[Path]:
        # compose runs in the directory of the first compose file
        return [p.absolute() for p in value]

    @field_validator("project_name", "stack_name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value

    def missing_files(self) -> List[Path]:
        """
        Lists compose and env files that do not exist on disk.
        """
        return [p for p in list(self.compose_files) + list(self.env_files) if not p.exists()]


class WaitConfig(BaseModel):
    """
    Readiness wait request for the services of an already started project.
    An empty ``services`` list means every service reported by ``ps``.
    """
    model_config = ConfigDict(frozen=True)

    project_name: str
    services: List[str] = []
    timeout: timedelta = timedelta(seconds=60)
    poll_interval: timedelta = timedelta(seconds=2)
    target_status: ServiceStatus = ServiceStatus.RUNNING

    @field_validator("timeout", "poll_interval")
    @classmethod
    def _require_positive(cls, value: timedelta) -> timedelta:
        if value.total_seconds() <= 0:
            raise ValueError("must be a positive duration")
        return value


class LogsConfig(BaseModel):
    """
    Options for a single log capture. ``tail=0`` means the whole log.
    ``follow`` is accepted for compatibility but a capture always returns once.
    """
    model_config = ConfigDict(frozen=True)

    services: List[str] = []
    tail: int = 0
    follow: bool = False
    output_file: Optional[Path] = None

    @field_validator("tail")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("tail must be zero or positive")
        return value
