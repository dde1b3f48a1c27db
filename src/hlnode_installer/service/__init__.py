"""Workload definition, supervision, and startup readiness."""

from hlnode_installer.service.compose import (
    PortBinding,
    ResourceLimits,
    WorkloadSpec,
    build_workload_spec,
    render_compose,
    write_compose,
)
from hlnode_installer.service.readiness import (
    ReadinessDetector,
    ReadinessResult,
    ReadinessSignal,
)
from hlnode_installer.service.supervisor import (
    SupervisorRegistrar,
    SupervisorUnit,
    build_supervisor_unit,
    render_unit,
)

__all__ = [
    "PortBinding",
    "ReadinessDetector",
    "ReadinessResult",
    "ReadinessSignal",
    "ResourceLimits",
    "SupervisorRegistrar",
    "SupervisorUnit",
    "WorkloadSpec",
    "build_supervisor_unit",
    "build_workload_spec",
    "render_compose",
    "render_unit",
    "write_compose",
]
