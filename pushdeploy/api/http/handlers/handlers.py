"""Request Handlers - HTTP Request Processing Logic.

Responsibilities:
- Accept push hook notifications and hand them to the orchestrator
- Always acknowledge push hooks with an empty body, whatever the outcome
- Report orchestrator, allow-list and schedule status on the health endpoint
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from pushdeploy.core.admission.filter.filter import AdmissionFilter, RawPayload
from pushdeploy.core.exceptions import MalformedPayload, UnknownTarget, UntrustedSource
from pushdeploy.core.orchestrator.orchestrator import DeploymentOrchestrator
from pushdeploy.core.scheduling.binder.binder import SchedulerBinder
from pushdeploy.core.utils.utils import handle_exception

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def get_source_address(request: Request, trust_forwarded_for: bool = True) -> Optional[str]:
    """Address of the original sender.

    Args:
        request: HTTP request object
        trust_forwarded_for: Prefer the first X-Forwarded-For entry

    Returns:
        Source address string, or None when unknown
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()

    return request.client.host if request.client else None


async def read_push_payload(request: Request) -> RawPayload:
    """Read the push payload from a form ``payload`` field or a JSON body"""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()

    if content_type in FORM_CONTENT_TYPES:
        try:
            form = await request.form()
        except Exception as e:
            raise MalformedPayload(f"unreadable form body: {e}") from e
        payload = form.get("payload")
        if payload is None:
            raise MalformedPayload("form body has no payload field")
        return payload

    return await request.body()


async def handle_push_hook(
    request: Request,
    admission_filter: AdmissionFilter,
    orchestrator: DeploymentOrchestrator,
    trust_forwarded_for: bool = True,
) -> Response:
    """Push event hook.

    Args:
        request: HTTP request object
        admission_filter: Admission filter instance
        orchestrator: Deployment orchestrator instance
        trust_forwarded_for: Whether to read the source from X-Forwarded-For

    Returns:
        Empty 200 response, independent of the deployment outcome
    """
    source = get_source_address(request, trust_forwarded_for)
    logger.debug(f"ENTRY handle_push_hook: source={source}")

    try:
        raw_payload = await read_push_payload(request)
        deployment = admission_filter.admit(source, raw_payload)
        logger.info(f"📬 Received push event for {deployment.name}")
        orchestrator.submit(deployment)
    except UntrustedSource as e:
        logger.warning(f"🚫 {e}")
    except UnknownTarget as e:
        logger.debug(f"{e}, ignoring push")
    except MalformedPayload as e:
        logger.warning(f"⚠️ {e} (source: {source})")
    except Exception as e:
        handle_exception(e, "Push Hook")

    logger.debug("EXIT handle_push_hook: acknowledged")
    return Response("", status_code=200)


async def handle_health_check(
    request: Request,
    orchestrator: DeploymentOrchestrator,
    admission_filter: AdmissionFilter,
    binder: SchedulerBinder,
) -> JSONResponse:
    """Health check endpoint with orchestrator state.

    Args:
        request: HTTP request object
        orchestrator: Deployment orchestrator instance
        admission_filter: Admission filter instance (allow-list source)
        binder: Scheduler binder instance

    Returns:
        JSON response with health status
    """
    snapshot = orchestrator.snapshot()
    status = "deploying" if snapshot["active"] else "idle"
    logger.debug(f"Health check: {status}, pending={len(snapshot['pending'])}")

    return JSONResponse(
        {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "orchestrator": {"state": status, **snapshot},
            "allowlist": admission_filter.allowlist.ranges,
            "schedules": binder.get_status(),
        }
    )
