"""Deployment Request - Identity of one unit of deployment work

Responsibilities:
- Derive branch and branch slug from a git ref
- Build the canonical target name (repository + branch slug)
- Carry the target working copy path
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

HEADS_PREFIX = "refs/heads/"

# Path separators and whitespace runs collapse to a single dash
_SLUG_SEPARATORS = re.compile(r"[\s/\\]+")


def branch_from_ref(ref: str) -> str:
    """Strip the ref namespace from a git ref.

    ``refs/heads/feature/x`` becomes ``feature/x``. Other ``refs/<kind>/``
    namespaces are stripped the same way; a bare branch name is returned as is.
    """
    ref = ref.strip()
    if ref.startswith(HEADS_PREFIX):
        return ref[len(HEADS_PREFIX):]
    parts = ref.split("/", 2)
    if len(parts) == 3 and parts[0] == "refs":
        return parts[2]
    return ref


def branch_slug(branch: str) -> str:
    """Normalize a branch for use in a target name: ``feature/x`` -> ``feature-x``"""
    return _SLUG_SEPARATORS.sub("-", branch.strip()).strip("-")


def target_name(repository: str, branch: str) -> str:
    """Build the canonical target name for a repository and branch"""
    return f"{repository}-{branch_slug(branch)}"


@dataclass(frozen=True)
class DeploymentRequest:
    """One deployment of one target; ``name`` is its identity for locking and queueing"""

    name: str
    path: Path
    repository: str
    branch: str

    @classmethod
    def create(cls, repository: str, branch: str, targets_root: Union[str, Path]) -> "DeploymentRequest":
        """Create a request for a repository branch under the targets root"""
        name = target_name(repository, branch)
        return cls(name=name, path=Path(targets_root) / name, repository=repository, branch=branch)

    @classmethod
    def from_ref(cls, repository: str, ref: str, targets_root: Union[str, Path]) -> "DeploymentRequest":
        """Create a request from a push ref such as ``refs/heads/main``"""
        return cls.create(repository, branch_from_ref(ref), targets_root)

    @classmethod
    def for_path(cls, path: Union[str, Path], branch: str) -> "DeploymentRequest":
        """Create a request for an existing target directory (scheduled runs).

        The directory name is the target name; the repository is recovered by
        stripping the branch slug suffix when it matches.
        """
        path = Path(path)
        name = path.name
        suffix = f"-{branch_slug(branch)}"
        repository = name[: -len(suffix)] if name.endswith(suffix) and len(name) > len(suffix) else name
        return cls(name=name, path=path, repository=repository, branch=branch)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and status output"""
        return {
            "name": self.name,
            "path": str(self.path),
            "repository": self.repository,
            "branch": self.branch,
        }
