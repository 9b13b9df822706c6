class HostsyncError(Exception):
    """Base class for every planning error raised by hostsync."""


class InvalidInput(HostsyncError):
    """Empty or malformed hostname, domain, address or configuration value."""


class ConflictingHostEntry(HostsyncError):
    """Two host table rules claim the same address with different names."""

    def __init__(self, ip: str, existing: str, incoming: str):
        self.ip = ip
        self.existing = existing
        self.incoming = incoming
        super().__init__(
            f"Address {ip} is already mapped to '{existing}', cannot also map it to '{incoming}'"
        )


class DependencyCycle(HostsyncError):
    """The action graph has a cycle or points at an action that does not exist."""

    def __init__(self, message: str, names=()):
        self.names = tuple(names)
        super().__init__(message)
