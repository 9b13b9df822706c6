"""Shared fixtures for hostsync tests."""

import os
import tempfile

# The file logger must not write into the working tree during tests
os.environ.setdefault("HOSTSYNC_LOG_FILE", os.path.join(tempfile.gettempdir(), "hostsync-tests.log"))

import pytest

from convergence.actions import ObservedState
from convergence.identity import HostnameSpec, resolve
from convergence.platform import PlatformContext, PlatformFamily, ServiceManager

ALL_TOOLS = frozenset({"hostnamectl", "domainname", "rs_tag"})


@pytest.fixture
def debian():
    return PlatformContext(PlatformFamily.DEBIAN, "debian", "12", ServiceManager.SYSTEMD)


@pytest.fixture
def ubuntu():
    return PlatformContext(PlatformFamily.DEBIAN, "ubuntu", "22.04", ServiceManager.SYSTEMD)


@pytest.fixture
def rhel6():
    return PlatformContext(PlatformFamily.RHEL, "centos", "6.10", ServiceManager.INIT)


@pytest.fixture
def rhel7():
    return PlatformContext(PlatformFamily.RHEL, "centos", "7.9", ServiceManager.SYSTEMD)


@pytest.fixture
def mac():
    return PlatformContext(PlatformFamily.MAC_OS_X, "mac_os_x", "14.2", ServiceManager.LAUNCHD)


@pytest.fixture
def web01():
    """Identity for web01.example.com."""
    return resolve(HostnameSpec("web01.example.com"))


@pytest.fixture
def observed():
    """Builds an ObservedState with sensible defaults for a fresh machine."""

    def _build(platform, **overrides):
        values = {
            "kernel_fqdn": "localhost",
            "hosts_content": "127.0.0.1\tlocalhost\n",
            "network_config_hostname": "",
            "tools": ALL_TOOLS,
            "local_ip": "10.0.0.5",
            "configd": None,
            "smb": None,
        }
        values.update(overrides)
        return ObservedState(platform=platform, **values)

    return _build
