import sys

import pytest
from dcorch.MODELS.compose_config import ComposeConfig
from dcorch.MODELS.errors import ComposeErrorType, ComposeServiceError
from dcorch.RUNNERS.process_runner import SubprocessExecutor


def test_command_injection_attempt(tmp_path):
    """
    Test that shell metacharacters in arguments are passed literally.
    """
    injected_file = tmp_path / "injected.txt"
    command = [sys.executable, "-c", "import sys; print(sys.argv[1:])", ";", "touch", str(injected_file)]

    result = SubprocessExecutor().execute(command, working_directory=tmp_path)

    assert result.success
    assert not injected_file.exists(), "Command injection successful! Security vulnerability found."


def test_project_name_is_a_single_argument(orchestrator, executor, compose_file):
    """
    Test that a hostile project name never splits into extra compose arguments.
    """
    project = "demo; docker rm -f $(docker ps -aq)"
    config = ComposeConfig(compose_files=[compose_file], project_name=project, stack_name="demo")
    orchestrator.up_stack(config)
    orchestrator.down_stack(project)

    for command in executor.commands():
        assert command[command.index("-p") + 1] == project


def test_cleanup_filter_is_scoped_to_project(orchestrator, executor):
    """
    Test that leftover container removal only ever targets the project label.
    """
    orchestrator.cleanup_stack("demo")
    listing = executor.commands("docker ps")[0]
    assert listing[-2:] == ["--filter", "label=com.docker.compose.project=demo"]


def test_missing_compose_file_not_read(orchestrator, executor, tmp_path):
    """
    Test that a non-existent compose path is rejected before compose runs.
    """
    config = ComposeConfig(compose_files=[tmp_path / ".." / "non_existent_file_12345.yml"],
                           project_name="demo", stack_name="demo")
    with pytest.raises(ComposeServiceError) as exc_info:
        orchestrator.up_stack(config)
    assert exc_info.value.error_type == ComposeErrorType.COMPOSE_FILE_NOT_FOUND
    assert executor.calls == []
