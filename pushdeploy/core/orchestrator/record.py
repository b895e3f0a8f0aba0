"""Deployment Records

Outcome of the most recent deployment attempt per target name.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class DeploymentStatus(Enum):
    """Deployment status enumeration"""
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class DeploymentRecord:
    """One deployment attempt"""
    name: str
    status: DeploymentStatus
    started_at: str
    completed_at: Optional[str] = None
    stage: Optional[str] = None  # "pull" or "run" when failed
    error: Optional[str] = None

    @classmethod
    def start(cls, name: str):
        """Create a record for an attempt starting now"""
        return cls(name=name, status=DeploymentStatus.RUNNING, started_at=datetime.now(timezone.utc).isoformat())

    def finish(self, stage: Optional[str] = None, error: Optional[str] = None):
        self.status = DeploymentStatus.FAILED if error is not None else DeploymentStatus.SUCCEEDED
        self.stage = stage
        self.error = error
        self.completed_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "name": self.name,
            "status": self.status.value,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "stage": self.stage,
            "error": self.error,
        }
