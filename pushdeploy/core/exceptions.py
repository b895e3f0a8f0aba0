"""Custom Exception Types for the Deployment System

Every recoverable failure in the admission, pull and run path is expressed
as one of these types so callers can log it with a stable error_type.
"""


class DeploySystemError(Exception):
    """Base exception for deployment system errors"""
    def __init__(self, message: str, error_type: str = None, context: dict = None):
        super().__init__(message)
        self.error_type = error_type or self.__class__.__name__
        self.context = context or {}


class AdmissionError(DeploySystemError):
    """Base class for rejected push notifications"""


class UntrustedSource(AdmissionError):
    """Raised when a notification comes from outside the allow-list"""
    def __init__(self, source_address: str):
        super().__init__(
            f"Request from non-whitelisted address: {source_address}",
            "untrusted_source",
            {"source_address": source_address}
        )


class MalformedPayload(AdmissionError):
    """Raised when a push payload cannot be parsed"""
    def __init__(self, reason: str):
        super().__init__(f"Malformed push payload: {reason}", "malformed_payload", {"reason": reason})


class UnknownTarget(AdmissionError):
    """Raised when no deployment definition exists for a target name"""
    def __init__(self, name: str, path: str = None):
        super().__init__(
            f"No deployment target named {name}",
            "unknown_target",
            {"name": name, "path": path}
        )


class TargetNotFound(DeploySystemError):
    """Raised when a target directory has no definition module"""
    def __init__(self, path: str):
        super().__init__(f"No deployment definition at {path}", "target_not_found", {"path": path})


class TargetDefinitionInvalid(DeploySystemError):
    """Raised when a definition module fails to load or lacks run()"""
    def __init__(self, path: str, error_details: str):
        super().__init__(
            f"Invalid deployment definition at {path}: {error_details}",
            "target_definition_invalid",
            {"path": path, "error_details": error_details}
        )


class PullFailed(DeploySystemError):
    """Raised when syncing a working copy fails"""
    def __init__(self, name: str, error_details: str):
        super().__init__(
            f"Git pull error ({name}): {error_details}",
            "pull_failed",
            {"name": name, "error_details": error_details}
        )


class RunFailed(DeploySystemError):
    """Raised when a target's run step fails or times out"""
    def __init__(self, name: str, error_details: str):
        super().__init__(
            f"Error while deploying {name}: {error_details}",
            "run_failed",
            {"name": name, "error_details": error_details}
        )


class InvalidSchedule(DeploySystemError):
    """Raised when a cron expression cannot be parsed"""
    def __init__(self, expression: str):
        super().__init__(f"Invalid cron expression: {expression}", "invalid_schedule", {"expression": expression})


def create_error_response(error: DeploySystemError) -> dict:
    """Create standardized error response format"""
    return {
        "success": False,
        "error": str(error),
        "error_type": error.error_type,
        "metadata": error.context
    }
