"""
Shared fixtures: a scripted ProcessExecutor so orchestration can be tested
without spawning docker.
"""
import json
from collections import deque

import pytest

from dcorch.MANAGERS.stack_orchestrator import ComposeStackOrchestrator
from dcorch.RUNNERS.process_runner import ProcessResult

_VALUE_FLAGS = {"-f", "--file", "--env-file", "-p", "--project-name"}


def action_of(command):
    """
    Names the operation a command performs: the compose subcommand ("up",
    "ps", ...) or "docker <subcommand>" for plain docker CLI calls.
    """
    if list(command[:2]) == ["docker", "compose"] or command[0] == "docker-compose":
        tokens = iter(command[2:] if command[0] == "docker" else command[1:])
        for token in tokens:
            if token in _VALUE_FLAGS:
                next(tokens, None)
                continue
            return token
        return ""
    return f"{command[0]} {command[1]}" if len(command) > 1 else command[0]


class FakeExecutor:
    """
    Records every call and answers from per-action scripts. The last scripted
    result of an action repeats; unscripted actions succeed with no output.
    A scripted exception instance is raised instead of returned.
    """
    def __init__(self):
        self.calls = []
        self._scripts = {}

    def on(self, action, *results):
        self._scripts[action] = deque(results)
        return self

    def execute(self, command, working_directory=None, env=None, timeout=None):
        command = list(command)
        self.calls.append({
            "command": command,
            "working_directory": working_directory,
            "env": env,
            "timeout": timeout,
        })
        script = self._scripts.get(action_of(command))
        if not script:
            return ProcessResult(exit_code=0, output="")
        result = script.popleft() if len(script) > 1 else script[0]
        if isinstance(result, BaseException):
            raise result
        return result

    def commands(self, action=None):
        return [c["command"] for c in self.calls if action is None or action_of(c["command"]) == action]


def ps_line(service, state="running", container_id="abc123", ports="", name=None, health=None):
    record = {
        "ID": container_id,
        "Name": name or f"demo-{service}-1",
        "Service": service,
        "State": state,
        "Ports": ports,
    }
    if health is not None:
        record["Health"] = health
    return json.dumps(record)


def ps_output(*lines):
    return ProcessResult(exit_code=0, output="\n".join(lines) + "\n")


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def orchestrator(executor):
    return ComposeStackOrchestrator(executor=executor)


@pytest.fixture
def compose_file(tmp_path):
    path = tmp_path / "docker-compose.yml"
    path.write_text(
        "services:\n"
        "  web:\n"
        "    image: nginx:alpine\n"
        "    ports:\n"
        "      - '8080:80'\n"
        "  db:\n"
        "    image: postgres:16\n"
    )
    return path


@pytest.fixture
def make_ps_line():
    return ps_line


@pytest.fixture
def make_ps_output():
    return ps_output
