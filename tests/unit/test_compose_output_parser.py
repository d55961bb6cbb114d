import json

import pytest

from dcorch.MODELS.stack_state import PortMapping, ServiceStatus
from dcorch.PARSERS.compose_output_parser import ComposeOutputParser, classify_state, parse_port_mappings


@pytest.mark.parametrize("raw", ["", "   \n  ", None])
def test_parse_blank_output(raw):
    assert ComposeOutputParser().parse(raw) == {}


def test_parse_single_record():
    line = json.dumps({
        "ID": "abc123",
        "Name": "demo-web-1",
        "Service": "web",
        "State": "running",
        "Ports": "0.0.0.0:8080->80/tcp",
    })
    services = ComposeOutputParser("demo").parse(line)

    web = services["web"]
    assert web.container_id == "abc123"
    assert web.container_name == "demo-web-1"
    assert web.state == ServiceStatus.RUNNING
    assert web.published_ports == [PortMapping(host_port=8080, container_port=80, protocol="tcp")]
    assert web.host_port(80) == 8080
    assert web.host_port(443) is None


def test_healthy_takes_precedence_over_running():
    services = ComposeOutputParser().parse('{"ID":"abc","Service":"web","State":"running (healthy)"}')
    assert services["web"].state == ServiceStatus.HEALTHY


def test_health_field_refines_running():
    line = json.dumps({"ID": "abc", "Service": "db", "State": "running", "Health": "healthy"})
    assert ComposeOutputParser().parse(line)["db"].state == ServiceStatus.HEALTHY


def test_health_field_starting_stays_running():
    line = json.dumps({"ID": "abc", "Service": "db", "State": "running", "Health": "starting"})
    assert ComposeOutputParser().parse(line)["db"].state == ServiceStatus.RUNNING


def test_dual_stack_ports_produce_two_mappings():
    mappings = parse_port_mappings("0.0.0.0:8080->80/tcp, :::8080->80/tcp")
    assert len(mappings) == 2
    for mapping in mappings:
        assert mapping.host_port == 8080
        assert mapping.container_port == 80
        assert mapping.protocol == "tcp"


def test_unpublished_port_is_ignored():
    assert parse_port_mappings("80/tcp") == []
    assert parse_port_mappings("80/tcp, 0.0.0.0:5432->5432/tcp") == [
        PortMapping(host_port=5432, container_port=5432)
    ]


def test_port_protocol_defaults_to_tcp():
    assert parse_port_mappings("127.0.0.1:9000->9000") == [PortMapping(host_port=9000, container_port=9000)]
    assert parse_port_mappings("0.0.0.0:53->53/udp")[0].protocol == "udp"


def test_malformed_lines_are_skipped():
    output = "\n".join([
        "WARN[0000] the attribute `version` is obsolete",
        '{"ID":"1","Service":"web","State":"running"}',
        "{not json",
        '{"ID":"2","Service":"db","State":"exited (0)"}',
    ])
    services = ComposeOutputParser().parse(output)
    assert set(services) == {"web", "db"}
    assert services["db"].state == ServiceStatus.STOPPED


def test_record_without_service_or_parseable_name_is_dropped():
    output = '{"ID":"1","Name":"standalone","State":"running"}\n{"ID":"2","State":"running"}'
    assert ComposeOutputParser().parse(output) == {}


@pytest.mark.parametrize("name, project, expected", [
    ("demo_web_1", "demo", "web"),
    ("demo-web-1", "demo", "web"),
    ("my-app-api-server-2", "my-app", "api-server"),
    ("demo_web_1", None, "web"),
])
def test_service_name_from_container_name(name, project, expected):
    line = json.dumps({"ID": "x", "Name": name, "State": "running"})
    services = ComposeOutputParser(project).parse(line)
    assert list(services) == [expected]
    assert services[expected].container_name == name


def test_missing_id_uses_sentinel():
    services = ComposeOutputParser().parse('{"Service":"web","State":"running"}')
    assert services["web"].container_id == "unknown"


def test_status_used_when_state_missing():
    services = ComposeOutputParser().parse('{"ID":"1","Service":"web","Status":"Up 5 seconds"}')
    assert services["web"].state == ServiceStatus.RUNNING


def test_array_output_is_supported():
    output = json.dumps([
        {"ID": "1", "Service": "web", "State": "running"},
        {"ID": "2", "Service": "db", "State": "restarting"},
    ])
    services = ComposeOutputParser().parse(output)
    assert services["db"].state == ServiceStatus.RESTARTING


def test_publishers_used_when_ports_empty():
    line = json.dumps({
        "ID": "1",
        "Service": "web",
        "State": "running",
        "Ports": "",
        "Publishers": [
            {"URL": "0.0.0.0", "TargetPort": 80, "PublishedPort": 8080, "Protocol": "tcp"},
            {"URL": "", "TargetPort": 443, "PublishedPort": 0, "Protocol": "tcp"},
        ],
    })
    web = ComposeOutputParser().parse(line)["web"]
    assert web.published_ports == [PortMapping(host_port=8080, container_port=80)]


def test_duplicate_service_last_record_wins():
    output = "\n".join([
        '{"ID":"first","Service":"worker","State":"running"}',
        '{"ID":"second","Service":"worker","State":"exited (1)"}',
    ])
    worker = ComposeOutputParser().parse(output)["worker"]
    assert worker.container_id == "second"
    assert worker.state == ServiceStatus.STOPPED


@pytest.mark.parametrize("raw, expected", [
    ("running", ServiceStatus.RUNNING),
    ("Up 3 minutes", ServiceStatus.RUNNING),
    ("Up 3 minutes (healthy)", ServiceStatus.HEALTHY),
    ("Up 3 minutes (unhealthy)", ServiceStatus.RUNNING),
    ("Up 2 seconds (health: starting)", ServiceStatus.RUNNING),
    ("HEALTHY", ServiceStatus.HEALTHY),
    ("Exited (0) 5 seconds ago", ServiceStatus.STOPPED),
    ("stopped", ServiceStatus.STOPPED),
    ("restarting", ServiceStatus.RESTARTING),
    ("created", ServiceStatus.UNKNOWN),
    ("", ServiceStatus.UNKNOWN),
    (None, ServiceStatus.UNKNOWN),
])
def test_classify_state(raw, expected):
    assert classify_state(raw) == expected
