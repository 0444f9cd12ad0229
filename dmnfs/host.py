"""Host command checks and sudo credential handling."""

from __future__ import annotations

import os
import sys

from loguru import logger

from .machine import DriverKind
from .runtime import DOCKER_MACHINE, DOCKER_MACHINE_WSL
from .util import run_cmd, which

log = logger

REQUIRED_CMDS = ['sudo', 'tee', 'nfsd']
REQUIRED_CMDS_WSL = ['sc.exe', 'wslpath', 'net.exe']
DRIVER_CMDS: dict[DriverKind, list[str]] = {
    DriverKind.VIRTUALBOX: ['VBoxManage'],
    DriverKind.VMWARE: ['route', 'ifconfig', 'cp'],
    DriverKind.SHARED_ROUTE: ['route', 'ifconfig'],
    DriverKind.PARALLELS: ['prlsrvctl'],
}


def check_commands(*, wsl: bool = False) -> list[str]:
    """Return the required commands missing before the driver is known."""
    required = [DOCKER_MACHINE_WSL if wsl else DOCKER_MACHINE]
    required += REQUIRED_CMDS_WSL if wsl else REQUIRED_CMDS
    return [c for c in required if which(c) is None]


def check_driver_commands(kind: DriverKind, *, ip_override: bool = False) -> list[str]:
    cmds = DRIVER_CMDS.get(kind, [])
    if ip_override and kind is not DriverKind.VIRTUALBOX:
        # The override replaces every lookup except the nfs.conf backup.
        cmds = [c for c in cmds if c == 'cp']
    return [c for c in cmds if which(c) is None]


def refresh_sudo() -> None:
    """Prompt for the sudo password once so later `sudo -n` calls succeed."""
    if os.geteuid() == 0 or not sys.stdin.isatty():
        return
    log.debug('Refreshing sudo credentials')
    run_cmd(['sudo', '-v'], check=True, capture=False)
