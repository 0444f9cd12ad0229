"""Render and install the boot2docker bootlocal.sh that mounts the NFS shares."""

from __future__ import annotations

import shlex
import time

from loguru import logger

from .config import NFSConfig
from .exports import resolve_host_path
from .machine import machine_ssh
from .net import MachineDescriptor

log = logger

NFS_CLIENT_INIT = '/usr/local/etc/init.d/nfs-client'
INSTALL_SETTLE_S = 2.0


def render_bootlocal(cfg: NFSConfig, desc: MachineDescriptor) -> str:
    q = shlex.quote
    lines = ['#!/bin/sh', f'sudo umount {q(cfg.paths.default_mount)}']
    for folder in cfg.shared_folders:
        lines.append(f'sudo mkdir -p {q(folder)}')
    lines.append(f'sudo {NFS_CLIENT_INIT} start')
    for folder in cfg.shared_folders:
        source = resolve_host_path(folder, cfg.paths.data_volume)
        lines.append(
            f'sudo mount -t nfs -o {q(cfg.mount_opts)} '
            f'{desc.nfshost_ip}:{q(source)} {q(folder)}'
        )
    return '\n'.join(lines) + '\n'


def install_bootlocal(
    cfg: NFSConfig,
    desc: MachineDescriptor,
    *,
    settle_s: float = INSTALL_SETTLE_S,
) -> str:
    """Overwrite the guest boot script. Returns the script text."""
    script = render_bootlocal(cfg, desc)
    dst = shlex.quote(cfg.paths.bootlocal_file)
    if cfg.dry_run:
        log.info('DRYRUN: install {}:\n{}', cfg.paths.bootlocal_file, script)
        return script
    remote = (
        f"printf '%s\\n' {shlex.quote(script.rstrip())}"
        f' | sudo tee {dst} > /dev/null'
        f' && sudo chmod +x {dst} && sync'
    )
    machine_ssh(cfg, remote, check=True)
    time.sleep(settle_s)
    log.info('Installed {} on {}', cfg.paths.bootlocal_file, cfg.machine_name)
    return script
