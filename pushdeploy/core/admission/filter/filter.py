"""Admission Filter - Trust and parse inbound push notifications

Responsibilities:
- Reject notifications from outside the source allow-list
- Parse the push payload (repository name and ref)
- Map repository + branch to a deployment target name and path
- Drop requests for targets without a deployment definition
"""

import json
import logging
import re
from typing import Any, Mapping, Union

from pushdeploy.core.exceptions import MalformedPayload, UnknownTarget, UntrustedSource
from pushdeploy.core.security.allowlist.allowlist import AllowList
from pushdeploy.core.targets.registry.registry import TargetRegistry
from pushdeploy.core.targets.request.request import DeploymentRequest, branch_from_ref, branch_slug

logger = logging.getLogger(__name__)

# Repository names become directory names
_REPOSITORY_NAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]*$")

RawPayload = Union[str, bytes, Mapping[str, Any]]


def parse_push_payload(raw_payload: RawPayload) -> tuple[str, str]:
    """Extract (repository name, ref) from a push event payload

    Raises:
        MalformedPayload: payload is not JSON or misses required fields
    """
    if isinstance(raw_payload, (str, bytes)):
        try:
            payload = json.loads(raw_payload)
        except ValueError as e:
            raise MalformedPayload(f"invalid JSON: {e}") from e
    else:
        payload = raw_payload

    if not isinstance(payload, Mapping):
        raise MalformedPayload("payload is not an object")

    repository = payload.get("repository")
    name = repository.get("name") if isinstance(repository, Mapping) else None
    ref = payload.get("ref")

    if not isinstance(name, str) or not name:
        raise MalformedPayload("missing repository.name")
    if not _REPOSITORY_NAME.match(name) or ".." in name:
        raise MalformedPayload(f"unsupported repository name: {name!r}")
    if not isinstance(ref, str) or not ref.strip():
        raise MalformedPayload("missing ref")
    if not branch_slug(branch_from_ref(ref)):
        raise MalformedPayload(f"ref names no branch: {ref!r}")

    return name, ref


class AdmissionFilter:
    """Turns a trusted push notification into a DeploymentRequest"""

    def __init__(self, allowlist: AllowList, registry: TargetRegistry):
        self.allowlist = allowlist
        self.registry = registry

    def admit(self, source_address: str, raw_payload: RawPayload) -> DeploymentRequest:
        """Validate a notification and build its deployment request.

        Args:
            source_address: Address the notification came from
            raw_payload: Push event payload (JSON text or decoded mapping)

        Returns:
            DeploymentRequest for an existing target

        Raises:
            UntrustedSource: address outside the allow-list
            MalformedPayload: payload cannot be parsed
            UnknownTarget: no deployment definition for the target name
        """
        if not self.allowlist.contains(source_address):
            raise UntrustedSource(source_address)

        repository, ref = parse_push_payload(raw_payload)
        request = DeploymentRequest.from_ref(repository, ref, self.registry.targets_root)
        logger.debug(f"Deployer data {request.to_dict()}")

        exists = self.registry.exists(request.path)
        logger.debug(f"{request.path} exists: {exists}")
        if not exists:
            raise UnknownTarget(request.name, str(request.path))

        return request
