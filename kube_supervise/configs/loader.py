"""
Configuration Loader

Builds a SuperviseConfig from a JSON file, a dictionary or the environment.
Flag values may reference environment variables (``$KUBE_SUPERVISE_RC``),
which are expanded before use.
"""

import json
import os
import re
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from loguru import logger

from .types import ConnectionDefaults, GroupKind, SuperviseConfig, Transport

ENV_PREFIX = "KUBE_SUPERVISE_"

_TRUE_VALUES = {"1", "true", "yes", "on"}

# $NAME or ${NAME}; unset variables expand to ""
_ENV_REF = re.compile(r"\$(\w+)|\$\{(\w+)\}")


def expand(value: Optional[str], name: str = "") -> str:
    """Expand ``$VAR`` references in a flag value; unset variables become empty"""
    if value is None:
        return ""
    expanded = _ENV_REF.sub(lambda m: os.environ.get(m.group(1) or m.group(2), ""), value)
    if name:
        logger.debug(f"flag {name} is {expanded!r}")
    return expanded


def expand_and_verify(value: Optional[str], name: str) -> str:
    """Expand a flag value and fail if it ends up empty"""
    expanded = expand(value, name)
    if not expanded:
        raise ValueError(f"No parameter supplied for: {name}")
    return expanded


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


class ConfigLoader:
    """Loads and validates configuration from files and the environment"""

    @staticmethod
    def load_from_file(config_path: str) -> SuperviseConfig:
        """Load configuration from a JSON file"""
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            data = json.load(f)

        return ConfigLoader.from_dict(data)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> SuperviseConfig:
        """Create SuperviseConfig from a dictionary"""
        conn = data.get("connection", {})
        defaults = ConnectionDefaults(
            port=str(conn.get("port", "22")),
            transport=Transport(conn.get("transport", Transport.SSH.value)),
            user=conn.get("user"),
            private_key=conn.get("private_key"),
            password=conn.get("password"),
        )

        return SuperviseConfig(
            inventory_path=data.get("inventory_path", "inventory"),
            hosts_selector=data.get("hosts_selector"),
            namespace=data.get("namespace"),
            group_name=data.get("group_name"),
            group_kind=GroupKind(data.get("group_kind", GroupKind.STATEFUL_SET.value)),
            template_path=data.get("template_path"),
            identity=data.get("identity"),
            defaults=defaults,
            api_timeout_seconds=float(data.get("api_timeout_seconds", 30.0)),
            connect_timeout_seconds=float(data.get("connect_timeout_seconds", 30.0)),
            assignment_retry_timeout_seconds=float(data.get("assignment_retry_timeout_seconds", 300.0)),
            assignment_retry_interval_seconds=float(data.get("assignment_retry_interval_seconds", 5.0)),
            shell_script_path=data.get("shell_script_path"),
            log_level=data.get("log_level", "INFO"),
        )

    @staticmethod
    def from_env(base: Optional[SuperviseConfig] = None) -> SuperviseConfig:
        """
        Overlay ``KUBE_SUPERVISE_*`` environment variables (and a ``.env``
        file, if present) on top of ``base``.
        """
        load_dotenv()
        data = ConfigLoader.to_dict(base or SuperviseConfig())
        # to_dict never writes the password; keep the one from base
        if base is not None and base.defaults.password:
            data["connection"]["password"] = base.defaults.password

        for key, env_name in (
            ("inventory_path", "INVENTORY"),
            ("hosts_selector", "HOSTS"),
            ("namespace", "NAMESPACE"),
            ("group_name", "RC"),
            ("group_kind", "KIND"),
            ("template_path", "TEMPLATE"),
            ("shell_script_path", "BASH"),
        ):
            value = os.getenv(ENV_PREFIX + env_name, "").strip()
            if value:
                data[key] = value

        for key, env_name in (
            ("port", "PORT"),
            ("user", "USER"),
            ("private_key", "PRIVATEKEY"),
            ("password", "PASSWORD"),
        ):
            value = os.getenv(ENV_PREFIX + env_name, "").strip()
            if value:
                data["connection"][key] = value

        if env_flag(ENV_PREFIX + "WINRM"):
            data["connection"]["transport"] = Transport.WINRM.value

        identity = os.getenv(ENV_PREFIX + "IDENTITY", "").strip() or os.getenv("HOSTNAME", "").strip()
        if identity and not data.get("identity"):
            data["identity"] = identity

        return ConfigLoader.from_dict(data)

    @staticmethod
    def to_dict(config: SuperviseConfig) -> Dict[str, Any]:
        """Convert SuperviseConfig to a dictionary. The password is omitted."""
        return {
            "inventory_path": config.inventory_path,
            "hosts_selector": config.hosts_selector,
            "namespace": config.namespace,
            "group_name": config.group_name,
            "group_kind": config.group_kind.value,
            "template_path": config.template_path,
            "identity": config.identity,
            "connection": {
                "port": config.defaults.port,
                "transport": config.defaults.transport.value,
                "user": config.defaults.user,
                "private_key": config.defaults.private_key,
            },
            "api_timeout_seconds": config.api_timeout_seconds,
            "connect_timeout_seconds": config.connect_timeout_seconds,
            "assignment_retry_timeout_seconds": config.assignment_retry_timeout_seconds,
            "assignment_retry_interval_seconds": config.assignment_retry_interval_seconds,
            "shell_script_path": config.shell_script_path,
            "log_level": config.log_level,
        }

    @staticmethod
    def save_to_file(config: SuperviseConfig, config_path: str) -> None:
        """Save configuration to a JSON file"""
        data = ConfigLoader.to_dict(config)

        # Ensure directory exists
        os.makedirs(os.path.dirname(config_path) or ".", exist_ok=True)

        with open(config_path, 'w') as f:
            json.dump(data, f, indent=2)
