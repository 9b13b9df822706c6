from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Tuple


class PlatformFamily(str, Enum):
    DEBIAN = "debian"
    RHEL = "rhel"
    MAC_OS_X = "mac_os_x"
    OTHER = "other"


class ServiceManager(str, Enum):
    INIT = "init"
    UPSTART = "upstart"
    SYSTEMD = "systemd"
    LAUNCHD = "launchd"
    NONE = "none"


DEBIAN_IDS = ("debian", "ubuntu", "raspbian", "linuxmint")
RHEL_IDS = ("rhel", "centos", "redhat", "rocky", "almalinux", "ol", "amzn", "scientific")

LEGACY_RHEL_VERSION = "7.0"


def _version_tuple(version: str) -> Optional[Tuple[int, ...]]:
    """'6.10' -> (6, 10). Returns None when any component is not numeric."""
    parts = (version or "").strip().split(".")
    try:
        return tuple(int(p) for p in parts)
    except ValueError:
        return None


@dataclass(frozen=True)
class PlatformContext:
    """
    Read-only description of the managed machine, supplied fresh every run.
    """
    family: PlatformFamily
    distro: str
    version: str = ""
    service_manager: ServiceManager = ServiceManager.NONE

    @property
    def is_mac(self) -> bool:
        return self.family == PlatformFamily.MAC_OS_X

    @property
    def is_debian_family(self) -> bool:
        return self.family == PlatformFamily.DEBIAN

    def version_below(self, threshold: str) -> bool:
        """Numeric dotted-version comparison. Unparseable versions are never below."""
        current = _version_tuple(self.version)
        limit = _version_tuple(threshold)
        if current is None or limit is None:
            return False

        # Pad so that "7" and "7.0" compare equal
        width = max(len(current), len(limit))
        current += (0,) * (width - len(current))
        limit += (0,) * (width - len(limit))
        return current < limit

    @property
    def is_legacy_rhel(self) -> bool:
        """RHEL-family releases before 7.0 keep the hostname in /etc/sysconfig/network."""
        return self.family == PlatformFamily.RHEL and self.version_below(LEGACY_RHEL_VERSION)


def detect_platform(
        os_release: Mapping[str, str],
        uname: str = "Linux",
        sw_version: Optional[str] = None,
        service_manager: Optional[str] = None,
) -> PlatformContext:
    """
    Maps /etc/os-release (or Darwin's uname + sw_vers) to a PlatformContext.
    """
    manager = ServiceManager(service_manager) if service_manager else ServiceManager.NONE

    if (uname or "").strip() == "Darwin":
        return PlatformContext(
            family=PlatformFamily.MAC_OS_X,
            distro="mac_os_x",
            version=(sw_version or "").strip(),
            service_manager=manager if service_manager else ServiceManager.LAUNCHD,
        )

    distro_id = os_release.get("ID", "unknown").strip().lower()
    id_like = os_release.get("ID_LIKE", "").lower().split()
    version = os_release.get("VERSION_ID", "").strip()

    if distro_id in DEBIAN_IDS or "debian" in id_like or "ubuntu" in id_like:
        family = PlatformFamily.DEBIAN
    elif distro_id in RHEL_IDS or "rhel" in id_like:
        family = PlatformFamily.RHEL
    else:
        family = PlatformFamily.OTHER

    return PlatformContext(family=family, distro=distro_id, version=version, service_manager=manager)
