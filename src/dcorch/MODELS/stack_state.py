"""
Models describing a running Compose stack: service status, published ports,
per-service container records and the stack snapshot itself.
"""
from typing import Dict, List, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ServiceStatus(str, Enum):
    """
    Classification of the raw state strings reported by ``docker compose ps``.
    """
    RUNNING = "running"
    HEALTHY = "healthy"
    STOPPED = "stopped"
    RESTARTING = "restarting"
    UNKNOWN = "unknown"


class PortMapping(BaseModel):
    """
    A host port published for a container port.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    host_port: int
    container_port: int
    protocol: str = "tcp"

    def __str__(self) -> str:
        return f"{self.host_port}:{self.container_port}/{self.protocol}"


class ServiceInfo(BaseModel):
    """
    One container of a stack, as parsed from a single ``ps`` record.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    container_id: str = "unknown"
    service_name: str
    container_name: Optional[str] = None
    state: ServiceStatus = ServiceStatus.UNKNOWN
    published_ports: List[PortMapping] = []

    def host_port(self, container_port: int) -> Optional[int]:
        """
        Looks up the host port published for a container port.

        :param container_port: Port inside the container.
        :return: The host port, or None if the port is not published.
        """
        for mapping in self.published_ports:
            if mapping.container_port == container_port:
                return mapping.host_port
        return None


class StackState(BaseModel):
    """
    Point-in-time snapshot of a stack, keyed by service name.
    A fresh snapshot is produced by querying ``ps`` again; snapshots are never updated in place.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    stack_name: str
    project_name: str
    services: Dict[str, ServiceInfo] = {}

    def get_service(self, name: str) -> Optional[ServiceInfo]:
        return self.services.get(name)

    def host_port(self, service_name: str, container_port: int) -> Optional[int]:
        """
        Resolves the host port for a service's container port, the usual
        starting point for building a connection string in a test.
        """
        info = self.services.get(service_name)
        if info is None:
            return None
        return info.host_port(container_port)
