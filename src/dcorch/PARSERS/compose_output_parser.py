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
Parser for ``docker compose ps --format json`` output.
"""
import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from ..MODELS.stack_state import PortMapping, ServiceInfo, ServiceStatus

logger = logging.getLogger(__name__)

# {project}_{service}_{index} or {project}-{service}-{index}
_CONTAINER_NAME_PATTERN = re.compile(r'^[^_-]+[_-](?P<service>.+)[_-]\d+$')
_INDEX_SUFFIX = re.compile(r'[_-]\d+$')


def classify_state(raw: Optional[str]) -> ServiceStatus:
    """
    Maps a Compose state or status string onto a ServiceStatus.
    Matching is case-insensitive and by substring; ``healthy`` wins over
    ``running`` and ``up``, which it always accompanies.

    :param raw: Value of the ``State`` or ``Status`` field, e.g. ``Up 3 seconds (healthy)``.
    :return: The classified status.
    """
    if not raw or not isinstance(raw, str):
        return ServiceStatus.UNKNOWN

    text = raw.lower()
    if "healthy" in text and "unhealthy" not in text:
        return ServiceStatus.HEALTHY
    if "running" in text or "up" in text:
        return ServiceStatus.RUNNING
    if "exited" in text or "stopped" in text:
        return ServiceStatus.STOPPED
    if "restarting" in text:
        return ServiceStatus.RESTARTING
    return ServiceStatus.UNKNOWN


def _parse_port_entry(entry: str) -> Optional[PortMapping]:
    """
    Parses ``[host:]hostPort->containerPort[/protocol]``.
    Returns None for container-only ports and for non-numeric tokens.
    """
    if "->" not in entry:
        return None
    host_part, container_part = entry.split("->", 1)
    host_port = host_part.rsplit(":", 1)[-1].strip()

    protocol = "tcp"
    if "/" in container_part:
        container_part, protocol = container_part.split("/", 1)
        protocol = protocol.strip() or "tcp"

    try:
        return PortMapping(host_port=int(host_port), container_port=int(container_part.strip()), protocol=protocol)
    except ValueError:
        logger.debug("Skipping unparseable port mapping: %s", entry)
        return None


def parse_port_mappings(ports: Optional[str]) -> List[PortMapping]:
    """
    Parses a comma-separated ``Ports`` string into port mappings.

    :param ports: e.g. ``0.0.0.0:8080->80/tcp, :::8080->80/tcp, 443/tcp``.
    :return: One mapping per published entry, in input order.
    """
    if not ports:
        return []
    mappings = []
    for entry in ports.split(","):
        entry = entry.strip()
        if not entry:
            continue
        mapping = _parse_port_entry(entry)
        if mapping is not None:
            mappings.append(mapping)
    return mappings


def _publisher_mappings(publishers: Any) -> List[PortMapping]:
    mappings = []
    if not isinstance(publishers, list):
        return mappings
    for publisher in publishers:
        if not isinstance(publisher, dict):
            continue
        try:
            host_port = int(publisher.get("PublishedPort") or 0)
            container_port = int(publisher.get("TargetPort") or 0)
        except (TypeError, ValueError):
            continue
        if host_port and container_port:
            mappings.append(PortMapping(
                host_port=host_port,
                container_port=container_port,
                protocol=str(publisher.get("Protocol") or "tcp"),
            ))
    return mappings


class ComposeOutputParser:
    """
    Parses newline-delimited JSON records from ``docker compose ps --format json``.
    Lines that are not JSON are skipped; they never abort the parse.
    """
    def __init__(self, project_name: Optional[str] = None):
        """
        :param project_name: Project the output belongs to, used to strip the
            project prefix from container names when no ``Service`` field is present.
        """
        self.project_name = project_name

    def parse(self, raw_output: Optional[str]) -> Dict[str, ServiceInfo]:
        """
        Parses the whole output into a mapping of service name to ServiceInfo.
        When a service has several containers the last record wins.

        :param raw_output: Text captured from the ``ps`` command.
        :return: Services keyed by name; empty for blank input.
        """
        services: Dict[str, ServiceInfo] = {}
        if not raw_output or not raw_output.strip():
            return services

        for line in raw_output.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except ValueError:
                logger.debug("Skipping non-JSON line from compose ps: %s", line)
                continue

            for record in self._records(data):
                info = self.parse_record(record)
                if info is not None:
                    services[info.service_name] = info
        return services

    def _records(self, data: Any) -> Iterable[Dict[str, Any]]:
        if isinstance(data, dict):
            return [data]
        if isinstance(data, list):
            return [item for item in data if isinstance(item, dict)]
        return []

    def parse_record(self, record: Dict[str, Any]) -> Optional[ServiceInfo]:
        """
        Builds a ServiceInfo from one decoded ``ps`` object.

        :param record: Decoded JSON object.
        :return: The service record, or None if no service name can be determined.
        """
        name = record.get("Name") if isinstance(record.get("Name"), str) else None
        service_name = record.get("Service") if isinstance(record.get("Service"), str) else None
        if not service_name and name:
            service_name = self.service_from_container_name(name)
        if not service_name:
            return None

        state = classify_state(record.get("State") or record.get("Status"))
        health = record.get("Health")
        if state == ServiceStatus.RUNNING and isinstance(health, str) and health.lower() == "healthy":
            state = ServiceStatus.HEALTHY

        ports = record.get("Ports")
        published = parse_port_mappings(ports if isinstance(ports, str) else None)
        if not published:
            published = _publisher_mappings(record.get("Publishers"))

        return ServiceInfo(
            container_id=str(record.get("ID") or "unknown"),
            service_name=service_name,
            container_name=name,
            state=state,
            published_ports=published,
        )

    def service_from_container_name(self, name: str) -> Optional[str]:
        """
        Derives the service name from a ``{project}_{service}_{index}`` or
        ``{project}-{service}-{index}`` container name.
        """
        if self.project_name:
            for separator in ("_", "-"):
                prefix = f"{self.project_name}{separator}"
                if name.startswith(prefix):
                    remainder = _INDEX_SUFFIX.sub("", name[len(prefix):])
                    if remainder and remainder != name[len(prefix):]:
                        return remainder
        match = _CONTAINER_NAME_PATTERN.match(name)
        if match:
            return match.group("service")
        return None
