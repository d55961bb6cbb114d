"""
Settings for the orchestrator, read from DCORCH_* variables in a dotenv file
and the process environment.
"""
import os
import shlex
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, field_validator

ENV_PREFIX = "DCORCH_"


class OrchestratorSettings(BaseModel):
    """
    Defaults used when a caller does not pass explicit values.
    ``compose_command`` may be ``auto`` to probe for the plugin or the legacy binary.
    """
    compose_command: str = "docker compose"
    docker_command: str = "docker"
    state_dir: Path = Path("build/compose-state")
    wait_timeout: float = 60.0
    poll_interval: float = 2.0
    log_level: str = "INFO"

    @field_validator("wait_timeout", "poll_interval")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()

    def compose_tokens(self) -> Optional[List[str]]:
        """
        The compose command split into argv tokens, or None when it should be probed.
        """
        if self.compose_command.strip().lower() == "auto":
            return None
        return shlex.split(self.compose_command)

    def docker_tokens(self) -> List[str]:
        return shlex.split(self.docker_command)

    @classmethod
    def load(cls,
             env_file: Optional[str] = None,
             environ: Optional[Mapping[str, str]] = None) -> "OrchestratorSettings":
        """
        Builds settings from a dotenv file overlaid by the process environment.

        :param env_file: Path to a dotenv file. Defaults to ``.env`` when it exists.
        :param environ: Environment mapping, defaults to ``os.environ``.
        :return: Validated settings.
        """
        values: Dict[str, Optional[str]] = {}
        if env_file is None and os.path.exists(".env"):
            env_file = ".env"
        if env_file:
            values.update(dotenv_values(env_file))
        values.update(os.environ if environ is None else environ)

        fields = {}
        for key, value in values.items():
            if value is None or not key.startswith(ENV_PREFIX):
                continue
            name = key[len(ENV_PREFIX):].lower()
            if name in cls.model_fields:
                fields[name] = value
        return cls(**fields)
