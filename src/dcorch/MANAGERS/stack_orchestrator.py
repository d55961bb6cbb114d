# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Lifecycle orchestration of Docker Compose stacks: start, readiness polling,
state snapshots, log capture and teardown.
"""
import logging
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from tenacity import RetryCallState, RetryError, Retrying, retry_if_result, stop_before_delay, wait_fixed

from ..MODELS.compose_config import ComposeConfig, LogsConfig, WaitConfig
from ..MODELS.errors import (
    ComposeErrorType,
    ComposeServiceError,
    ServiceWaitInterruptedError,
    ServiceWaitTimeoutError,
)
from ..MODELS.settings import OrchestratorSettings
from ..MODELS.stack_state import ServiceInfo, ServiceStatus, StackState
from ..PARSERS.compose_output_parser import ComposeOutputParser
from ..PARSERS.compose_parser import ComposeFileInspector
from ..RUNNERS.compose_command import PLUGIN_COMMAND, resolve_compose_command
from ..RUNNERS.process_runner import ProcessExecutor, ProcessResult, SubprocessExecutor
from .environment_manager import EnvironmentManager
from .readiness import ReadinessResult, ServiceReadinessEvaluator

logger = logging.getLogger(__name__)

PROJECT_LABEL = "com.docker.compose.project"
FAILURE_LOG_TAIL = 1000

StackIdentifier = Union[str, ComposeConfig]


class ComposeStackOrchestrator:
    """
    Drives a Compose stack through explicit calls: ``up_stack``,
    ``wait_for_services``, ``capture_logs`` and ``down_stack``.

    Every call blocks until its process exits. The only suspension point is
    the sleep between readiness polls, which ``cancel`` interrupts for one
    project. Stacks are isolated by project name; the only per-project state
    is that cancellation flag.
    """
    def __init__(self,
                 executor: Optional[ProcessExecutor] = None,
                 compose_command: Optional[Sequence[str]] = None,
                 docker_command: Optional[Sequence[str]] = None,
                 env_manager: Optional[EnvironmentManager] = None):
        """
        Initializes the orchestrator.

        :param executor: Runs the compose and docker processes.
        :param compose_command: Compose command tokens, ``docker compose`` by default.
        :param docker_command: Docker CLI tokens used for leftover container removal.
        :param env_manager: Builds the environment of the ``up`` process.
        """
        self.executor = executor or SubprocessExecutor()
        self.compose_command = list(compose_command or PLUGIN_COMMAND)
        self.docker_command = list(docker_command or ["docker"])
        self.env_manager = env_manager or EnvironmentManager()
        self.inspector = ComposeFileInspector()
        self._cancel_events: Dict[str, threading.Event] = {}
        self._cancel_lock = threading.Lock()

    @classmethod
    def from_settings(cls,
                      settings: OrchestratorSettings,
                      executor: Optional[ProcessExecutor] = None) -> "ComposeStackOrchestrator":
        """
        Builds an orchestrator from settings, probing for Compose when configured as ``auto``.
        """
        executor = executor or SubprocessExecutor()
        compose_command = resolve_compose_command(executor, settings.compose_tokens())
        return cls(executor=executor,
                   compose_command=compose_command,
                   docker_command=settings.docker_tokens())

    # Command construction

    def _file_flags(self, config: ComposeConfig) -> List[str]:
        flags: List[str] = []
        # Order is preserved exactly: later files override earlier ones.
        for compose_file in config.compose_files:
            flags.extend(["-f", str(compose_file)])
        for env_file in config.env_files:
            flags.extend(["--env-file", str(env_file)])
        return flags

    def build_up_command(self, config: ComposeConfig) -> List[str]:
        return self.compose_command + self._file_flags(config) + ["-p", config.project_name, "up", "-d"]

    def build_ps_command(self, project_name: str) -> List[str]:
        return self.compose_command + ["-p", project_name, "ps", "--format", "json"]

    def build_down_command(self, identifier: StackIdentifier) -> List[str]:
        if isinstance(identifier, ComposeConfig):
            return self.compose_command + self._file_flags(identifier) + ["-p", identifier.project_name, "down"]
        return self.compose_command + ["-p", identifier, "down"]

    def build_logs_command(self, project_name: str, config: LogsConfig) -> List[str]:
        command = self.compose_command + ["-p", project_name, "logs"]
        if config.tail > 0:
            command.extend(["--tail", str(config.tail)])
        command.extend(config.services)
        return command

    # Process helpers

    def _run(self,
             command: List[str],
             error_type: ComposeErrorType,
             action: str,
             working_directory: Optional[Path] = None,
             env: Optional[Dict[str, str]] = None) -> ProcessResult:
        try:
            return self.executor.execute(command, working_directory=working_directory, env=env)
        except Exception as e:
            raise ComposeServiceError(error_type, f"Failed to {action}: {e}",
                                      context={"command": " ".join(command)}) from e

    def _query_services(self, project_name: str) -> Dict[str, ServiceInfo]:
        """
        Runs one ``ps`` and parses it. A non-zero exit yields an empty mapping;
        a launch failure raises.
        """
        result = self._run(self.build_ps_command(project_name), ComposeErrorType.UNKNOWN,
                           f"query services of project '{project_name}'")
        if not result.success:
            logger.warning("docker compose ps failed for project '%s' (exit code %d): %s",
                           project_name, result.exit_code, result.output.strip())
            return {}
        return ComposeOutputParser(project_name).parse(result.output)

    # Lifecycle

    def up_stack(self, config: ComposeConfig) -> StackState:
        """
        Starts the stack detached and returns its initial snapshot.
        Services may still be starting; use ``wait_for_services`` for readiness.

        :param config: Stack definition.
        :return: Snapshot taken right after ``up``; its services are empty if ``ps`` failed.
        :raises ComposeServiceError: If a compose file is missing or ``up`` fails.
        """
        missing = [str(p) for p in config.missing_files()]
        if missing:
            raise ComposeServiceError(
                ComposeErrorType.COMPOSE_FILE_NOT_FOUND,
                f"File(s) not found for stack '{config.stack_name}': {', '.join(missing)}",
            )

        logger.info("Starting compose stack '%s' (project: %s)", config.stack_name, config.project_name)
        result = self._run(
            self.build_up_command(config),
            ComposeErrorType.SERVICE_START_FAILED,
            f"start stack '{config.stack_name}'",
            working_directory=config.compose_files[0].parent,
            env=self.env_manager.get_merged_environment(config.environment),
        )
        if not result.success:
            raise ComposeServiceError(
                ComposeErrorType.SERVICE_START_FAILED,
                f"Failed to start stack '{config.stack_name}': docker compose up exited with code "
                f"{result.exit_code}: {result.output.strip()}",
                context={"project": config.project_name},
            )

        try:
            services = self._query_services(config.project_name)
        except ComposeServiceError as e:
            logger.warning("Stack '%s' is up but its services could not be listed: %s", config.stack_name, e)
            services = {}

        state = StackState(stack_name=config.stack_name, project_name=config.project_name, services=services)
        logger.info("Compose stack '%s' started with %d service(s)", config.stack_name, len(services))
        for name, info in services.items():
            logger.debug("  %s: %s (%s)", name, info.state.value,
                         ", ".join(str(p) for p in info.published_ports))
        return state

    def snapshot(self, project_name: str, stack_name: Optional[str] = None) -> StackState:
        """
        Takes a fresh snapshot of a running project. Degrades to no services if ``ps`` fails.
        """
        try:
            services = self._query_services(project_name)
        except ComposeServiceError as e:
            logger.warning("Could not list services of project '%s': %s", project_name, e)
            services = {}
        return StackState(stack_name=stack_name or project_name, project_name=project_name, services=services)

    def wait_for_services(self,
                          config: WaitConfig,
                          cancel_event: Optional[threading.Event] = None) -> ServiceStatus:
        """
        Polls ``ps`` until the services reach the target status.

        Each poll judges every service from one ``ps`` invocation. Another poll
        is scheduled only if it would start before the deadline, so a poll
        interval at or above the timeout checks exactly once.

        :param config: Project, services, timeout, poll interval and target status.
        :param cancel_event: Event that interrupts this wait only. Defaults to the
            project's flag, set by ``cancel(project_name)``.
        :return: The target status once reached.
        :raises ServiceWaitTimeoutError: If the deadline passes; names the unready services.
        :raises ServiceWaitInterruptedError: If the wait is cancelled during a sleep.
        :raises ComposeServiceError: If ``ps`` cannot be launched.
        """
        evaluator = ServiceReadinessEvaluator(config.target_status)
        cancelled = cancel_event if cancel_event is not None else self._cancel_event(config.project_name)
        timeout = config.timeout.total_seconds()
        interval = config.poll_interval.total_seconds()
        target = config.target_status.value
        label = ", ".join(config.services) if config.services else "all services"
        logger.info("Waiting up to %gs for %s of project '%s' to be %s",
                    timeout, label, config.project_name, target)

        last = ReadinessResult(ready=False)

        def check() -> ReadinessResult:
            nonlocal last
            last = evaluator.evaluate(self._query_services(config.project_name), config.services)
            return last

        def interruptible_sleep(seconds: float) -> None:
            if cancelled.wait(seconds):
                raise ServiceWaitInterruptedError(config.project_name)

        def log_poll(retry_state: RetryCallState) -> None:
            logger.debug("Poll %d: not yet %s: %s", retry_state.attempt_number, target,
                         ", ".join(last.unready) or "no services reported")

        retrying = Retrying(
            retry=retry_if_result(lambda result: not result.ready),
            stop=stop_before_delay(timeout),
            wait=wait_fixed(interval),
            sleep=interruptible_sleep,
            before_sleep=log_poll,
        )
        try:
            retrying(check)
        except RetryError:
            raise ServiceWaitTimeoutError(config.project_name, target, last.unready, timeout) from None

        logger.info("Services of project '%s' are %s: %s", config.project_name, target, label)
        return config.target_status

    def down_stack(self, identifier: StackIdentifier) -> None:
        """
        Stops and removes the stack's containers and networks.
        Callers in teardown paths should prefer ``cleanup_stack``.

        :param identifier: Project name, or the full config to pass the same ``-f`` flags as ``up``.
        :raises ComposeServiceError: If ``down`` cannot be launched or exits non-zero.
        """
        if isinstance(identifier, ComposeConfig):
            project_name = identifier.project_name
            working_directory: Optional[Path] = identifier.compose_files[0].parent
        else:
            project_name = identifier
            working_directory = None

        logger.info("Stopping compose stack (project: %s)", project_name)
        result = self._run(self.build_down_command(identifier), ComposeErrorType.SERVICE_STOP_FAILED,
                           f"stop project '{project_name}'", working_directory=working_directory)
        if not result.success:
            raise ComposeServiceError(
                ComposeErrorType.SERVICE_STOP_FAILED,
                f"docker compose down failed for project '{project_name}' with exit code "
                f"{result.exit_code}: {result.output.strip()}",
            )
        logger.info("Compose stack stopped (project: %s)", project_name)

    def force_remove_containers(self, project_name: str) -> List[str]:
        """
        Removes any container still labelled with the project, e.g. after a failed ``down``.

        :param project_name: Compose project name.
        :return: IDs of the removed containers.
        """
        list_command = self.docker_command + ["ps", "-aq", "--filter", f"label={PROJECT_LABEL}={project_name}"]
        listed = self._run(list_command, ComposeErrorType.SERVICE_STOP_FAILED,
                           f"list containers of project '{project_name}'")
        if not listed.success:
            raise ComposeServiceError(
                ComposeErrorType.SERVICE_STOP_FAILED,
                f"Listing containers of project '{project_name}' failed: {listed.output.strip()}",
            )

        container_ids = [line.strip() for line in listed.output.splitlines() if line.strip()]
        if not container_ids:
            return []

        removed = self._run(self.docker_command + ["rm", "-f"] + container_ids,
                            ComposeErrorType.SERVICE_STOP_FAILED,
                            f"remove containers of project '{project_name}'")
        if not removed.success:
            raise ComposeServiceError(
                ComposeErrorType.SERVICE_STOP_FAILED,
                f"Removing containers of project '{project_name}' failed: {removed.output.strip()}",
            )
        logger.info("Removed %d leftover container(s) of project '%s'", len(container_ids), project_name)
        return container_ids

    def save_failure_logs(self, project_name: str, logs_dir: Path,
                          services: Sequence[str] = (), tail: int = FAILURE_LOG_TAIL) -> Optional[Path]:
        """
        Saves the last ``tail`` log lines of a failed stack to
        ``failure-logs-<epoch millis>.log`` in ``logs_dir``.
        Best-effort: a failed capture is logged and None is returned.
        """
        log_file = Path(logs_dir) / f"failure-logs-{int(time.time() * 1000)}.log"
        try:
            self.capture_logs(project_name, LogsConfig(services=list(services), tail=tail, output_file=log_file))
        except ComposeServiceError as e:
            logger.warning("Could not save failure logs for project '%s': %s", project_name, e)
            return None
        logger.info("Failure logs for project '%s' saved to %s", project_name, log_file)
        return log_file

    def cleanup_stack(self, identifier: StackIdentifier, failure_logs_dir: Optional[Path] = None,
                      failure_log_services: Sequence[str] = ()) -> bool:
        """
        Best-effort teardown for test cleanup: ``down`` followed by removal of
        leftover containers. Failures are logged, never raised, so they cannot
        mask the outcome of the tests that used the stack.

        :param identifier: Project name or the config the stack was started with.
        :param failure_logs_dir: If given, logs are saved there before teardown.
        :param failure_log_services: Services whose logs are saved, all if empty.
        :return: True if every teardown step succeeded.
        """
        project_name = identifier.project_name if isinstance(identifier, ComposeConfig) else identifier
        if failure_logs_dir is not None:
            self.save_failure_logs(project_name, failure_logs_dir, failure_log_services)
        clean = True
        try:
            self.down_stack(identifier)
        except ComposeServiceError as e:
            logger.warning("Compose down failed for project '%s': %s", project_name, e)
            clean = False
        try:
            self.force_remove_containers(project_name)
        except ComposeServiceError as e:
            logger.warning("Leftover container cleanup failed for project '%s': %s", project_name, e)
            clean = False
        if not clean:
            logger.warning("Some cleanup operations failed for project '%s'", project_name)
        return clean

    def capture_logs(self, project_name: str, config: Optional[LogsConfig] = None) -> str:
        """
        Captures the current logs of a project in one blocking call.
        ``follow`` never streams; the capture always returns.

        :param project_name: Compose project name.
        :param config: Services, tail length and optional output file.
        :return: Combined log output.
        :raises ComposeServiceError: If ``logs`` fails or the output file cannot be written.
        """
        config = config or LogsConfig()
        logger.info("Capturing logs for project: %s", project_name)
        result = self._run(self.build_logs_command(project_name, config),
                           ComposeErrorType.LOGS_CAPTURE_FAILED, f"capture logs of project '{project_name}'")
        if not result.success:
            raise ComposeServiceError(
                ComposeErrorType.LOGS_CAPTURE_FAILED,
                f"docker compose logs failed for project '{project_name}' with exit code "
                f"{result.exit_code}: {result.output.strip()}",
            )

        if config.output_file is not None:
            try:
                config.output_file.parent.mkdir(parents=True, exist_ok=True)
                config.output_file.write_text(result.output, encoding="utf-8")
            except OSError as e:
                raise ComposeServiceError(ComposeErrorType.LOGS_CAPTURE_FAILED,
                                          f"Could not write logs to {config.output_file}: {e}") from e
            logger.info("Logs written to %s", config.output_file)
        return result.output

    def undefined_services(self, config: ComposeConfig, services: Sequence[str]) -> List[str]:
        """
        Names in ``services`` that none of the stack's compose files define.
        Waiting for such a service can only time out, so they are logged as a warning.
        """
        unknown = self.inspector.undefined_services(config.compose_files, services)
        if unknown:
            logger.warning("Service(s) not defined in the compose files of stack '%s': %s",
                           config.stack_name, ", ".join(unknown))
        return unknown

    # Cancellation

    def _cancel_event(self, project_name: str) -> threading.Event:
        with self._cancel_lock:
            return self._cancel_events.setdefault(project_name, threading.Event())

    def cancel(self, project_name: str) -> None:
        """
        Interrupts readiness waits on one project. Waits on other projects are
        unaffected. The flag stays set, so later waits on the same project fail
        at their first sleep until ``reset_cancellation`` is called for it.
        """
        self._cancel_event(project_name).set()

    def reset_cancellation(self, project_name: str) -> None:
        self._cancel_event(project_name).clear()

    def is_cancelled(self, project_name: str) -> bool:
        return self._cancel_event(project_name).is_set()
