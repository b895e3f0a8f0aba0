"""Configuration Management for the Deployment Server

Responsibilities:
- Server configuration (host, port, hook path, proxy trust)
- Deployment configuration (targets root, definition file, timeouts)
- Allow-list configuration (default CIDR ranges, metadata endpoint)
- Logging configuration (console and log file levels)
- YAML file loading and PUSHDEPLOY_* environment overrides
"""

import ipaddress
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from pushdeploy.core.utils.utils import resolve_targets_root

logger = logging.getLogger(__name__)

DEFAULT_HOOK_RANGES = ["192.30.252.0/22"]


@dataclass
class ServerConfig:
    """Server configuration for the push hook listener"""

    host: str = "0.0.0.0"
    port: int = 8282
    hook_path: str = "/hooks/push"
    log_level: str = "INFO"
    access_log: bool = True

    # Reverse proxies put the real client first in X-Forwarded-For
    trust_forwarded_for: bool = True


@dataclass
class DeployConfig:
    """Deployment target discovery and execution settings"""

    targets_root: Path = None
    definition_filename: str = "deploy.py"

    # None = no timeout
    pull_timeout: Optional[float] = None
    run_timeout: Optional[float] = None

    def __post_init__(self):
        """Resolve the targets root"""
        self.targets_root = resolve_targets_root(self.targets_root)


@dataclass
class AllowListConfig:
    """Source address allow-list settings"""

    default_ranges: list[str] = None
    meta_url: str = "https://api.github.com/meta"
    meta_key: str = "hooks"
    meta_timeout: float = 10.0
    refresh_on_startup: bool = True

    def __post_init__(self):
        """Set defaults for mutable fields"""
        if self.default_ranges is None:
            self.default_ranges = list(DEFAULT_HOOK_RANGES)


@dataclass
class LoggingConfig:
    """Console and log file settings"""

    console_level: str = "DEBUG"
    file_level: str = "INFO"
    log_file: Optional[str] = "deployment.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Environment variable -> (section, field, converter)
ENV_OVERRIDES = {
    "PUSHDEPLOY_HOST": ("server", "host", str),
    "PUSHDEPLOY_PORT": ("server", "port", int),
    "PUSHDEPLOY_HOOK_PATH": ("server", "hook_path", str),
    "PUSHDEPLOY_TARGETS_ROOT": ("deploy", "targets_root", resolve_targets_root),
    "PUSHDEPLOY_PULL_TIMEOUT": ("deploy", "pull_timeout", float),
    "PUSHDEPLOY_RUN_TIMEOUT": ("deploy", "run_timeout", float),
    "PUSHDEPLOY_META_URL": ("allowlist", "meta_url", str),
    "PUSHDEPLOY_LOG_LEVEL": ("logging", "console_level", str),
    "PUSHDEPLOY_LOG_FILE": ("logging", "log_file", str),
}


class ConfigManager:
    """Central configuration manager

    Precedence: dataclass defaults, then the YAML file, then environment.
    """

    def __init__(self, config_path: str = None, environ: dict = None):
        self.server = ServerConfig()
        self.deploy = DeployConfig()
        self.allowlist = AllowListConfig()
        self.logging = LoggingConfig()

        environ = os.environ if environ is None else environ
        config_path = config_path or environ.get("PUSHDEPLOY_CONFIG")

        if config_path:
            self._load_from_file(config_path)

        self._apply_environment(environ)

    def _sections(self) -> dict[str, Any]:
        return {
            "server": self.server,
            "deploy": self.deploy,
            "allowlist": self.allowlist,
            "logging": self.logging,
        }

    def _load_from_file(self, config_path: str):
        """Load configuration from a YAML file"""
        path = Path(config_path).expanduser()
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file must contain a mapping: {path}")

        sections = self._sections()
        for section_name, values in data.items():
            section = sections.get(section_name)
            if section is None:
                logger.warning(f"Unknown configuration section ignored: {section_name}")
                continue
            self._apply_section(section, values or {}, section_name)

        # Relative targets roots are relative to the config file
        root = data.get("deploy", {}).get("targets_root") if isinstance(data.get("deploy"), dict) else None
        if root and not Path(root).expanduser().is_absolute():
            self.deploy.targets_root = resolve_targets_root(path.parent / root)

        logger.info(f"Loaded configuration from {path}")

    def _apply_section(self, section, values: dict, section_name: str):
        known = {f.name for f in fields(section)}
        for key, value in values.items():
            if key not in known:
                logger.warning(f"Unknown configuration key ignored: {section_name}.{key}")
                continue
            if key == "targets_root" and value:
                value = resolve_targets_root(value)
            setattr(section, key, value)

    def _apply_environment(self, environ):
        sections = self._sections()
        for env_name, (section_name, key, convert) in ENV_OVERRIDES.items():
            raw = environ.get(env_name)
            if raw is None or raw == "":
                continue
            setattr(sections[section_name], key, convert(raw))
            logger.debug(f"Environment override {env_name} -> {section_name}.{key}")

    def get_effective_config(self) -> dict:
        """Get effective configuration as dictionary"""
        return {
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "hook_path": self.server.hook_path,
                "trust_forwarded_for": self.server.trust_forwarded_for,
            },
            "deploy": {
                "targets_root": str(self.deploy.targets_root),
                "definition_filename": self.deploy.definition_filename,
                "pull_timeout": self.deploy.pull_timeout,
                "run_timeout": self.deploy.run_timeout,
            },
            "allowlist": {
                "default_ranges": self.allowlist.default_ranges,
                "meta_url": self.allowlist.meta_url,
                "refresh_on_startup": self.allowlist.refresh_on_startup,
            },
            "logging": {
                "console_level": self.logging.console_level,
                "file_level": self.logging.file_level,
                "log_file": self.logging.log_file,
            },
        }

    def validate_config(self) -> tuple[bool, list[str]]:
        """Validate complete configuration"""
        errors = []

        if not (1 <= int(self.server.port) <= 65535):
            errors.append(f"Invalid port number: {self.server.port}")

        if not self.server.hook_path.startswith("/"):
            errors.append(f"Hook path must start with '/': {self.server.hook_path}")

        if not Path(self.deploy.targets_root).is_dir():
            errors.append(f"Targets root is not a directory: {self.deploy.targets_root}")

        for name in ("pull_timeout", "run_timeout"):
            value = getattr(self.deploy, name)
            if value is not None and float(value) <= 0:
                errors.append(f"{name} must be positive: {value}")

        for cidr in self.allowlist.default_ranges:
            try:
                ipaddress.ip_network(cidr, strict=False)
            except ValueError:
                errors.append(f"Invalid CIDR range: {cidr}")

        for name in ("console_level", "file_level"):
            level = getattr(self.logging, name)
            if not isinstance(logging.getLevelName(str(level).upper()), int):
                errors.append(f"Unknown log level for {name}: {level}")

        return len(errors) == 0, errors


# Global configuration instance
_config_instance = None


def get_config() -> ConfigManager:
    """Get global configuration instance"""
    global _config_instance
    if _config_instance is None:
        _config_instance = ConfigManager()
    return _config_instance


def set_config(config: ConfigManager):
    """Set global configuration instance"""
    global _config_instance
    _config_instance = config
