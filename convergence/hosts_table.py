"""
Host table (/etc/hosts) planning.

The planner turns the resolved identity into an ordered list of HostEntry
operations. HostTable merges those operations into the table read from the
machine and renders the final file, one line per address.
"""
import ipaddress
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from convergence.identity import ResolvedIdentity
from convergence.platform import PlatformContext
from core.errors import ConflictingHostEntry, InvalidInput
from utils.logger import sys_logger

IPV6_PRIORITY = 5
STATIC_PRIORITY = 6
DEFAULT_PRIORITY = 10

HOSTS_FILE_HEADER = "# This file is managed by hostsync. Managed entries will be overwritten."


class EntryAction(str, Enum):
    UPSERT = "upsert"
    REMOVE = "remove"


def normalize_ip(ip: str) -> str:
    """Canonical text of a literal address. Names are never resolved."""
    try:
        return ipaddress.ip_address(ip.strip()).compressed
    except (ValueError, AttributeError):
        raise InvalidInput(f"'{ip}' is not a literal IPv4/IPv6 address") from None


@dataclass(frozen=True)
class HostEntry:
    ip: str
    canonical_name: Optional[str] = None
    aliases: Tuple[str, ...] = ()
    priority: int = DEFAULT_PRIORITY
    action: EntryAction = EntryAction.UPSERT
    # Remove only when the current entry references one of these names
    only_if_names: Optional[FrozenSet[str]] = None
    source: str = field(default="", compare=False)

    def __post_init__(self):
        normalize_ip(self.ip)
        if self.action == EntryAction.UPSERT and not self.canonical_name:
            raise InvalidInput(f"Host entry for {self.ip} needs a canonical name")
        object.__setattr__(self, "aliases", tuple(self.aliases or ()))

    @property
    def key(self) -> str:
        return normalize_ip(self.ip)

    @property
    def names(self) -> Tuple[str, ...]:
        return ((self.canonical_name,) if self.canonical_name else ()) + self.aliases

    def render(self) -> str:
        line = f"{self.ip}\t{self.canonical_name}"
        if self.aliases:
            line += " " + " ".join(self.aliases)
        return line

    def is_satisfied_by(self, table: "HostTable") -> bool:
        """Existence guard: True when the table already reflects this operation."""
        current = table.get(self.key)

        if self.action == EntryAction.REMOVE:
            if current is None:
                return True
            if self.only_if_names is not None:
                return not (set(current.names) & set(self.only_if_names))
            return False

        return (
                current is not None
                and current.canonical_name == self.canonical_name
                and current.aliases == self.aliases
        )


# --- FIXED TABLES ---

IPV6_HOSTS: Tuple[Tuple[str, str, Tuple[str, ...]], ...] = (
    ("::1", "localhost6.localdomain6", ("localhost6", "ip6-localhost", "ip6-loopback")),
    ("fe00::0", "ip6-localnet", ()),
    ("ff00::0", "ip6-mcastprefix", ()),
    ("ff02::1", "ip6-allnodes", ()),
    ("ff02::2", "ip6-allrouters", ()),
)


def _ipv6_entries(platform: PlatformContext) -> List[HostEntry]:
    # macOS keeps its stock IPv6 table: only ::1, named plain localhost
    if platform.is_mac:
        return [HostEntry("::1", "localhost", priority=IPV6_PRIORITY, source="ipv6")]

    return [
        HostEntry(ip, name, aliases, priority=IPV6_PRIORITY, source="ipv6")
        for ip, name, aliases in IPV6_HOSTS
    ]


def _loopback_entries(
        identity: ResolvedIdentity,
        platform: PlatformContext,
        permanent_ip: bool,
        local_ip: Optional[str],
) -> List[HostEntry]:
    fqdn, short = identity.fqdn, identity.short_name

    if permanent_ip:
        if not local_ip:
            raise InvalidInput("permanent_ip is enabled but the local IP address is unknown")
        return [
            HostEntry("127.0.1.1", action=EntryAction.REMOVE, source="loopback"),
            HostEntry("127.0.0.1", "localhost.localdomain", ("localhost",), source="loopback"),
            HostEntry(local_ip, fqdn, (short,), source="primary"),
        ]

    entries = []
    if local_ip:
        entries.append(HostEntry(
            local_ip, action=EntryAction.REMOVE, only_if_names=frozenset({fqdn}), source="primary"
        ))

    # Debian resolves the FQDN through 127.0.1.1, everyone else through 127.0.0.1
    if platform.is_debian_family:
        entries.append(HostEntry("127.0.1.1", fqdn, (short,), source="loopback"))
    else:
        entries.append(HostEntry(
            "127.0.0.1", fqdn, (short, "localhost.localdomain", "localhost"), source="loopback"
        ))
    return entries


def _collapse(entries: Iterable[HostEntry]) -> List[HostEntry]:
    """Last writer wins per address; the address keeps its first position."""
    collapsed: Dict[str, HostEntry] = {}
    for entry in entries:
        collapsed[entry.key] = entry
    return list(collapsed.values())


def plan(
        identity: ResolvedIdentity,
        platform: PlatformContext,
        permanent_ip: bool = False,
        static_hosts: Optional[Mapping[str, str]] = None,
        local_ip: Optional[str] = None,
) -> List[HostEntry]:
    """
    Produces the ordered host table operations for this machine:
    loopback/primary entries, broadcasthost (mac), the IPv6 set, then static hosts.
    """
    fixed = _loopback_entries(identity, platform, permanent_ip, local_ip)

    if platform.is_mac:
        fixed.append(HostEntry("255.255.255.255", "broadcasthost", source="broadcast"))

    fixed.extend(_ipv6_entries(platform))
    entries = _collapse(fixed)

    claimed = {entry.key: entry for entry in entries}
    for ip, hostname in (static_hosts or {}).items():
        if not hostname or not str(hostname).strip():
            raise InvalidInput(f"Static host {ip} has no hostname")

        entry = HostEntry(ip, str(hostname).strip(), priority=STATIC_PRIORITY, source="static")
        existing = claimed.get(entry.key)
        if existing is not None:
            raise ConflictingHostEntry(ip, existing.canonical_name or f"<{existing.action.value}>", entry.canonical_name)

        claimed[entry.key] = entry
        entries.append(entry)

    return entries


class HostTable:
    """
    Ordered view of a hosts file keyed by normalised address.
    """

    def __init__(self, entries: Iterable[HostEntry] = ()):
        self._entries: Dict[str, HostEntry] = {}
        for entry in entries:
            self._entries[entry.key] = entry

    @classmethod
    def parse(cls, text: Optional[str]) -> "HostTable":
        """Reads hosts file content. Comments and blank lines are dropped."""
        entries = []
        for raw_line in (text or "").splitlines():
            line = raw_line.split("#", 1)[0].strip()
            if not line:
                continue

            fields = line.split()
            if len(fields) < 2:
                sys_logger.warning(f"Ignoring hosts line without a hostname: '{raw_line}'")
                continue

            try:
                entries.append(HostEntry(fields[0], fields[1], tuple(fields[2:]), source="observed"))
            except InvalidInput:
                sys_logger.warning(f"Ignoring hosts line with an invalid address: '{raw_line}'")
        return cls(entries)

    def get(self, key: str) -> Optional[HostEntry]:
        return self._entries.get(key)

    def __contains__(self, ip: str) -> bool:
        return normalize_ip(ip) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries.values())

    def pending(self, entries: Iterable[HostEntry]) -> List[HostEntry]:
        """Operations whose existence guard is not yet satisfied."""
        return [entry for entry in entries if not entry.is_satisfied_by(self)]

    def apply(self, entries: Iterable[HostEntry]) -> "HostTable":
        """Returns a new table with the operations merged in, in order."""
        result = HostTable(self._entries.values())
        for entry in entries:
            if entry.is_satisfied_by(result):
                # Keep planned priority for managed entries even when unchanged
                if entry.action == EntryAction.UPSERT:
                    result._entries[entry.key] = replace(result._entries[entry.key], priority=entry.priority)
                continue

            if entry.action == EntryAction.REMOVE:
                del result._entries[entry.key]
            else:
                result._entries[entry.key] = entry
        return result

    def render(self, header: bool = True) -> str:
        """One line per address, sorted by priority then insertion order."""
        ordered = sorted(
            enumerate(self._entries.values()),
            key=lambda pair: (pair[1].priority, pair[0])
        )
        lines = [HOSTS_FILE_HEADER] if header else []
        lines.extend(entry.render() for _, entry in ordered)
        return "\n".join(lines) + "\n"
