import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv

from core.errors import InvalidInput

# Load env vars if present
load_dotenv()

DEFAULT_CONFIG_FILE = "hostsync_config.yaml"


# --- DATACLASSES (SCHEMA) ---

@dataclass
class SystemSettings:
    """Hostname and host table policy, overridable per host from the inventory."""
    fallback_domain: str = "localdomain"
    domain_name: Optional[str] = None
    short_hostname: Optional[str] = None
    permanent_ip: bool = False
    static_hosts: Dict[str, str] = field(default_factory=dict)
    netbios_name: Optional[str] = None

    # Managed files
    hosts_file: str = "/etc/hosts"
    hostname_file: str = "/etc/hostname"
    network_config_file: str = "/etc/sysconfig/network"


@dataclass
class AppSettings:
    """Root configuration object."""
    system: SystemSettings = field(default_factory=SystemSettings)
    environment: str = "dev"


# --- LOADER LOGIC ---

def _to_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("0", "false", "no", "off", ""):
        return False
    raise InvalidInput(f"Config value '{name}' must be a boolean, got {value!r}")


def _coerce_system(values: Mapping[str, Any]) -> SystemSettings:
    """Builds SystemSettings from a merged dict, ignoring unknown keys."""
    known = {f.name for f in fields(SystemSettings)}
    args = {k: v for k, v in values.items() if k in known}

    if "permanent_ip" in args:
        args["permanent_ip"] = _to_bool(args["permanent_ip"], "permanent_ip")

    static_hosts = args.get("static_hosts")
    if static_hosts is None:
        args["static_hosts"] = {}
    elif not isinstance(static_hosts, Mapping):
        raise InvalidInput("Config value 'static_hosts' must be a mapping of ip -> hostname")
    else:
        args["static_hosts"] = {str(ip): str(name) for ip, name in static_hosts.items()}

    return SystemSettings(**args)


def load_settings(config_path: str = DEFAULT_CONFIG_FILE) -> AppSettings:
    """
    Loads configuration merging: Defaults (Schema) < YAML File (Config) < Environment Vars.
    """

    # 1. Load YAML Config
    file_config = {}
    path = Path(config_path)
    if path.exists():
        with open(path, 'r') as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise InvalidInput(f"{config_path} must contain a mapping at the top level")

    # 2. Load Environment Variables (Overrides)
    env_config = {
        "environment": os.getenv("HOSTSYNC_ENV"),
        "system": {
            "fallback_domain": os.getenv("HOSTSYNC_FALLBACK_DOMAIN"),
            "domain_name": os.getenv("HOSTSYNC_DOMAIN_NAME"),
            "permanent_ip": os.getenv("HOSTSYNC_PERMANENT_IP"),
            "netbios_name": os.getenv("HOSTSYNC_NETBIOS_NAME"),
        }
    }

    # Cleanup: We remove None/Empty keys from ENV dictionaries
    def clean_none(d: Union[Dict, None]):
        if not isinstance(d, dict): return d
        return {k: clean_none(v) for k, v in d.items() if v is not None and v != {}}

    env_config = clean_none(env_config)

    # 3. Merge Logic
    system_file = file_config.get("system") or {}
    if not isinstance(system_file, dict):
        raise InvalidInput(f"'system' section of {config_path} must be a mapping")

    # Priority: Env > File > Defaults
    system_final = {**system_file, **env_config.get("system", {})}
    system_obj = _coerce_system(system_final)

    app_env_val = env_config.get("environment") or file_config.get("environment", "dev")

    return AppSettings(system=system_obj, environment=app_env_val)


def settings_for_host(base: SystemSettings, host_data: Mapping[str, Any]) -> SystemSettings:
    """
    Applies per-host inventory data on top of the global settings.
    static_hosts from the inventory extend the global ones.
    """
    overrides = {
        k: host_data[k] for k in ("fallback_domain", "domain_name", "short_hostname", "permanent_ip", "netbios_name")
        if host_data.get(k) is not None
    }
    merged = replace(base, **overrides)

    if "permanent_ip" in overrides:
        merged = replace(merged, permanent_ip=_to_bool(overrides["permanent_ip"], "permanent_ip"))

    host_static = host_data.get("static_hosts")
    if host_static:
        if not isinstance(host_static, Mapping):
            raise InvalidInput("Host value 'static_hosts' must be a mapping of ip -> hostname")
        merged = replace(merged, static_hosts={**base.static_hosts, **{str(k): str(v) for k, v in host_static.items()}})

    return merged
