import json
from datetime import datetime, timezone

import pytest

from dcorch.MANAGERS.state_snapshot import STATE_FILE_ENV, StateSnapshotReader, StateSnapshotWriter
from dcorch.MODELS.errors import ComposeErrorType, StateFileError
from dcorch.MODELS.stack_state import PortMapping, ServiceInfo, ServiceStatus, StackState


def _fixed_clock():
    return datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def state():
    return StackState(
        stack_name="demo-stack",
        project_name="demo",
        services={
            "web": ServiceInfo(
                container_id="abc123",
                service_name="web",
                container_name="demo-web-1",
                state=ServiceStatus.RUNNING,
                published_ports=[PortMapping(host_port=8080, container_port=80)],
            ),
            "db": ServiceInfo(service_name="db", state=ServiceStatus.HEALTHY),
        },
    )


def test_write_document_schema(tmp_path, state):
    writer = StateSnapshotWriter(tmp_path, clock=_fixed_clock)
    path = writer.write(state)

    assert path == tmp_path / "demo-stack-state.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data == {
        "stackName": "demo-stack",
        "projectName": "demo",
        "lifecycle": "suite",
        "timestamp": "2026-01-01T00:00:00Z",
        "services": {
            "web": {
                "containerId": "abc123",
                "serviceName": "web",
                "containerName": "demo-web-1",
                "state": "running",
                "publishedPorts": [{"hostPort": 8080, "containerPort": 80, "protocol": "tcp"}],
            },
            "db": {
                "containerId": "unknown",
                "serviceName": "db",
                "containerName": None,
                "state": "healthy",
                "publishedPorts": [],
            },
        },
    }


def test_write_overwrites_and_leaves_no_temp_files(tmp_path, state):
    writer = StateSnapshotWriter(tmp_path)
    destination = tmp_path / "custom.json"
    destination.write_text("stale")

    writer.write(state, destination)
    writer.write(state.model_copy(update={"services": {}}), destination)

    assert json.loads(destination.read_text())["services"] == {}
    assert sorted(p.name for p in tmp_path.iterdir()) == ["custom.json"]


def test_state_file_for_qualifiers(tmp_path):
    writer = StateSnapshotWriter(tmp_path / "state")
    assert writer.state_file_for("db") == tmp_path / "state" / "db-state.json"
    assert writer.state_file_for("db", "MyTest", "") == tmp_path / "state" / "db-MyTest-state.json"


def test_write_failure_raises_state_file_error(tmp_path, state):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    writer = StateSnapshotWriter(blocker / "nested")
    with pytest.raises(StateFileError) as exc_info:
        writer.write(state)
    assert exc_info.value.error_type == ComposeErrorType.STATE_FILE_FAILED


def test_reader_round_trip(tmp_path, state):
    path = StateSnapshotWriter(tmp_path, lifecycle="method").write(state)
    loaded = StateSnapshotReader().load(path)
    assert loaded == state
    assert loaded.host_port("web", 80) == 8080


def test_reader_from_environment(tmp_path, state):
    path = StateSnapshotWriter(tmp_path).write(state)
    loaded = StateSnapshotReader().from_environment({STATE_FILE_ENV: str(path)})
    assert loaded.project_name == "demo"


def test_reader_without_environment_variable():
    with pytest.raises(StateFileError):
        StateSnapshotReader().from_environment({})


def test_reader_malformed_file(tmp_path):
    path = tmp_path / "broken-state.json"
    path.write_text("{not json")
    with pytest.raises(StateFileError):
        StateSnapshotReader().load(path)
