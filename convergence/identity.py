from dataclasses import dataclass
from typing import Optional

from core.errors import InvalidInput
from utils.logger import sys_logger

DEFAULT_FALLBACK_DOMAIN = "localdomain"


@dataclass(frozen=True)
class HostnameSpec:
    """Hostname inputs as given by the inventory/config, constructed once per run."""
    raw_hostname: str
    explicit_short_name: Optional[str] = None
    explicit_domain: Optional[str] = None
    fallback_domain: str = DEFAULT_FALLBACK_DOMAIN


@dataclass(frozen=True)
class ResolvedIdentity:
    short_name: str
    domain: str
    fqdn: str


def _labels(name: str, what: str) -> list:
    if any(ch.isspace() for ch in name):
        raise InvalidInput(f"{what} '{name}' must not contain whitespace")

    labels = name.split(".")
    if any(label == "" for label in labels):
        raise InvalidInput(f"{what} '{name}' has an empty label")
    return labels


def resolve(spec: HostnameSpec, platform_fallback_domain: str = DEFAULT_FALLBACK_DOMAIN) -> ResolvedIdentity:
    """
    Builds the canonical lowercase (short_name, domain, fqdn) triple.

    Domain priority: explicit domain > labels after the first one > fallback domain.
    A bare hostname therefore still yields a valid FQDN ("workstation.localdomain").
    """
    raw = (spec.raw_hostname or "").strip()
    if not raw:
        raise InvalidInput("Hostname must not be empty")

    # Absolute form "web01.example.com." is accepted
    if raw.endswith(".") and len(raw) > 1:
        raw = raw[:-1]
    labels = _labels(raw.lower(), "Hostname")

    # 1. Short name
    short_name = labels[0]
    if spec.explicit_short_name is not None:
        short_name = spec.explicit_short_name.strip().lower()
        if not short_name:
            raise InvalidInput("Short hostname must not be empty")
        if "." in short_name or any(ch.isspace() for ch in short_name):
            raise InvalidInput(f"Short hostname '{short_name}' must be a single label")

    # 2. Domain
    if spec.explicit_domain is not None:
        domain = spec.explicit_domain.strip().lower().strip(".")
    elif len(labels) >= 2:
        domain = ".".join(labels[1:])
    else:
        domain = (spec.fallback_domain or platform_fallback_domain or "").strip().lower().strip(".")

    if not domain:
        raise InvalidInput(f"No domain could be determined for '{spec.raw_hostname}'")
    _labels(domain, "Domain")

    fqdn = f"{short_name}.{domain}".lower()
    sys_logger.debug(f"FQDN determined to be: {fqdn}")

    return ResolvedIdentity(short_name=short_name, domain=domain, fqdn=fqdn)
