"""
Resolution of the Compose executable: the ``docker compose`` plugin, or the
legacy ``docker-compose`` binary as a fallback.
"""
import logging
from typing import List, Optional, Sequence

from ..MODELS.errors import ComposeErrorType, ComposeServiceError
from .process_runner import ProcessExecutor

logger = logging.getLogger(__name__)

PLUGIN_COMMAND = ["docker", "compose"]
LEGACY_COMMAND = ["docker-compose"]


def _probe(executor: ProcessExecutor, command: Sequence[str]) -> bool:
    try:
        return executor.execute(list(command), timeout=30).success
    except Exception as e:
        logger.debug("Probe %s failed: %s", " ".join(command), e)
        return False


def detect_compose_command(executor: ProcessExecutor) -> List[str]:
    """
    Finds a working Compose command.

    :param executor: Executor used to run the version probes.
    :return: Command tokens to prefix every compose invocation with.
    :raises ComposeServiceError: If neither the plugin nor the legacy binary answers.
    """
    if _probe(executor, PLUGIN_COMMAND + ["version"]):
        logger.info("Using docker compose plugin")
        return list(PLUGIN_COMMAND)
    if _probe(executor, LEGACY_COMMAND + ["--version"]):
        logger.info("Using legacy docker-compose command")
        return list(LEGACY_COMMAND)
    raise ComposeServiceError(
        ComposeErrorType.COMPOSE_UNAVAILABLE,
        "Docker Compose is not available",
    )


def resolve_compose_command(executor: ProcessExecutor, configured: Optional[List[str]]) -> List[str]:
    """
    Returns the configured command, probing only when none is configured.
    """
    if configured:
        return list(configured)
    return detect_compose_command(executor)
