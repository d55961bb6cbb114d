"""
Readiness evaluation of parsed service records against a target status.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from ..MODELS.stack_state import ServiceInfo, ServiceStatus


@dataclass
class ReadinessResult:
    """Outcome of one readiness check over a single ``ps`` snapshot."""

    ready: bool
    unready: List[str] = field(default_factory=list)


class ServiceReadinessEvaluator:
    """
    Decides whether services satisfy a target status.
    HEALTHY is required for a HEALTHY target; RUNNING is satisfied by RUNNING
    or HEALTHY. Any other target is never satisfied.
    """
    def __init__(self, target: ServiceStatus):
        self.target = target

    def is_ready(self, info: ServiceInfo) -> bool:
        if self.target == ServiceStatus.HEALTHY:
            return info.state == ServiceStatus.HEALTHY
        if self.target == ServiceStatus.RUNNING:
            return info.state in (ServiceStatus.RUNNING, ServiceStatus.HEALTHY)
        return False

    def evaluate(self, services: Dict[str, ServiceInfo], requested: Sequence[str]) -> ReadinessResult:
        """
        Checks the requested services, or every reported service when none are requested.

        :param services: One snapshot of parsed ``ps`` records.
        :param requested: Service names to check; empty means all.
        :return: Whether all are ready, and which are not.
        """
        names = list(requested) if requested else list(services.keys())
        unready = [name for name in names if name not in services or not self.is_ready(services[name])]
        # Waiting for "all" services needs at least one to be reported.
        ready = not unready and bool(names)
        return ReadinessResult(ready=ready, unready=unready)
