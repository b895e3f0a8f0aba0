"""Deployment Orchestrator Module

Exports the single-flight orchestrator and its deployment records.
"""

from .orchestrator import DeploymentOrchestrator
from .record import DeploymentRecord, DeploymentStatus

__all__ = [
    "DeploymentOrchestrator",
    "DeploymentRecord",
    "DeploymentStatus",
]
