"""
State snapshot files: a JSON description of a running stack that test code in
another process reads to find container IDs and published ports.
"""
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from ..MODELS.errors import StateFileError
from ..MODELS.stack_state import StackState

logger = logging.getLogger(__name__)

STATE_FILE_ENV = "COMPOSE_STATE_FILE"
DEFAULT_STATE_DIR = Path("build/compose-state")
STATE_FILE_SUFFIX = "-state.json"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StateSnapshotWriter:
    """
    Serializes StackState snapshots, one file per stack, overwriting prior content.
    """
    def __init__(self,
                 state_dir: Union[str, Path] = DEFAULT_STATE_DIR,
                 lifecycle: str = "suite",
                 clock: Callable[[], datetime] = _utc_now):
        """
        :param state_dir: Directory for default state file locations.
        :param lifecycle: Lifecycle label recorded in the file, e.g. ``suite`` or ``method``.
        :param clock: Source of the recorded timestamp.
        """
        self.state_dir = Path(state_dir)
        self.lifecycle = lifecycle
        self.clock = clock

    def state_file_for(self, stack_name: str, *qualifiers: str) -> Path:
        """
        Default location: ``<state_dir>/<stack>[-<qualifier>...]-state.json``.
        """
        parts = [stack_name] + [q for q in qualifiers if q]
        return self.state_dir / ("-".join(parts) + STATE_FILE_SUFFIX)

    def to_document(self, state: StackState) -> Dict[str, Any]:
        timestamp = self.clock().astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        services = {
            name: info.model_dump(mode="json", by_alias=True)
            for name, info in state.services.items()
        }
        return {
            "stackName": state.stack_name,
            "projectName": state.project_name,
            "lifecycle": self.lifecycle,
            "timestamp": timestamp,
            "services": services,
        }

    def write(self, state: StackState, destination: Optional[Union[str, Path]] = None) -> Path:
        """
        Writes the snapshot atomically: readers never observe a partial file.

        :param state: Snapshot to serialize.
        :param destination: Target path, defaults to ``state_file_for(state.stack_name)``.
        :return: The path written.
        :raises StateFileError: If the file cannot be written.
        """
        path = Path(destination) if destination is not None else self.state_file_for(state.stack_name)
        content = json.dumps(self.to_document(state), indent=2)

        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.write("\n")
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StateFileError(f"Could not write state file for stack '{state.stack_name}': {e}", path) from e

        logger.info("State file written for stack '%s': %s", state.stack_name, path)
        return path


class StateSnapshotReader:
    """Loads snapshots written by StateSnapshotWriter."""

    def load(self, path: Union[str, Path]) -> StackState:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return StackState.model_validate(data)
        except OSError as e:
            raise StateFileError(f"Could not read state file: {e}", path) from e
        except (ValueError, ValidationError) as e:
            raise StateFileError(f"Malformed state file: {e}", path) from e

    def from_environment(self, environ: Optional[Mapping[str, str]] = None) -> StackState:
        """
        Loads the snapshot named by the ``COMPOSE_STATE_FILE`` environment variable.
        """
        environ = os.environ if environ is None else environ
        path = environ.get(STATE_FILE_ENV)
        if not path:
            raise StateFileError(f"{STATE_FILE_ENV} is not set", None)
        return self.load(path)
