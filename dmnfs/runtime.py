"""Runtime helpers for constructing docker-machine command arguments."""

from __future__ import annotations

import platform

DOCKER_MACHINE = 'docker-machine'
DOCKER_MACHINE_WSL = 'docker-machine.exe'


def is_wsl(release: str | None = None) -> bool:
    """True when running inside the Windows Subsystem for Linux."""
    if release is None:
        release = platform.uname().release
    return 'microsoft' in (release or '').lower()


def docker_machine_cmd(*args: str, wsl: bool = False) -> list[str]:
    exe = DOCKER_MACHINE_WSL if wsl else DOCKER_MACHINE
    return [exe, *args]


def ls_timeout_args(timeout: int | None) -> list[str]:
    # `docker-machine ls` is the only subcommand that accepts --timeout.
    if not timeout:
        return []
    return ['-t', str(timeout)]
