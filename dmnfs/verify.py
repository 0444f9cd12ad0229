"""Poll the guest mount table until every shared folder is mounted over NFS."""

from __future__ import annotations

import time
from typing import Callable

from loguru import logger

from .config import NFSConfig
from .errors import VerificationTimeout
from .exports import resolve_host_path
from .machine import machine_ssh
from .net import MachineDescriptor

log = logger

DEFAULT_ATTEMPTS = 10
DEFAULT_DELAY_S = 1.0


def expected_mounts(cfg: NFSConfig, desc: MachineDescriptor) -> list[str]:
    return [
        f'{desc.nfshost_ip}:{resolve_host_path(folder, cfg.paths.data_volume)} on'
        for folder in cfg.shared_folders
    ]


def mounts_present(mount_table: str, expected: list[str]) -> bool:
    return all(want in mount_table for want in expected)


def is_nfs_mounted(cfg: NFSConfig, desc: MachineDescriptor) -> bool:
    res = machine_ssh(cfg, 'sudo mount', check=False)
    if res.code != 0:
        log.debug('Reading guest mount table failed: {}', res.stderr.strip())
        return False
    return mounts_present(res.stdout, expected_mounts(cfg, desc))


def verify_nfs_mount(
    cfg: NFSConfig,
    desc: MachineDescriptor,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    delay_s: float = DEFAULT_DELAY_S,
    sleep: Callable[[float], None] | None = None,
) -> int:
    """Wait for the NFS mounts; returns the attempt number that saw them."""
    sleep = sleep or time.sleep
    if cfg.dry_run:
        log.info('DRYRUN: verify NFS mounts {}', expected_mounts(cfg, desc))
        return 0
    for attempt in range(1, attempts + 1):
        sleep(delay_s)
        if is_nfs_mounted(cfg, desc):
            log.debug('NFS mounts confirmed on attempt {}', attempt)
            return attempt
        log.debug('NFS mounts not visible yet (attempt {}/{})', attempt, attempts)
    raise VerificationTimeout('Cannot detect the NFS mount :(')
