"""docker-machine queries: presence, state, driver, IP, guest ssh and restart."""

from __future__ import annotations

import enum

from loguru import logger

from .config import NFSConfig
from .errors import PreconditionError
from .runtime import docker_machine_cmd, ls_timeout_args
from .util import CmdResult, run_cmd

log = logger


class DriverKind(enum.Enum):
    VIRTUALBOX = 'virtualbox'
    VMWARE = 'vmware'
    SHARED_ROUTE = 'shared_route'
    PARALLELS = 'parallels'


DRIVER_KINDS: dict[str, DriverKind] = {
    'virtualbox': DriverKind.VIRTUALBOX,
    'vmware': DriverKind.VMWARE,
    'vmwarefusion': DriverKind.VMWARE,
    'xhyve': DriverKind.SHARED_ROUTE,
    'hyperkit': DriverKind.SHARED_ROUTE,
    'vmwarevsphere': DriverKind.SHARED_ROUTE,
    'parallels': DriverKind.PARALLELS,
}


def driver_kind(driver: str) -> DriverKind | None:
    return DRIVER_KINDS.get((driver or '').strip().lower())


def _ls_field(cfg: NFSConfig, *fmt: str) -> str:
    cmd = docker_machine_cmd(
        'ls',
        *ls_timeout_args(cfg.timeout),
        '--filter',
        f'Name=^{cfg.machine_name}$',
        *fmt,
        wsl=cfg.wsl,
    )
    return run_cmd(cmd, check=True, capture=True).stdout.strip()


def check_machine_presence(cfg: NFSConfig) -> None:
    if not _ls_field(cfg, '-q'):
        raise PreconditionError(
            f"Could not find the machine '{cfg.machine_name}'!"
        )


def machine_state(cfg: NFSConfig) -> str:
    return _ls_field(cfg, '--format', '{{.State}}')


def check_machine_running(cfg: NFSConfig) -> None:
    state = machine_state(cfg)
    if state != 'Running':
        raise PreconditionError(
            f"The machine '{cfg.machine_name}' is not running but '{state}'!"
        )


def machine_driver(cfg: NFSConfig) -> str:
    return _ls_field(cfg, '--format', '{{.DriverName}}')


def machine_ip(cfg: NFSConfig) -> str:
    res = run_cmd(
        docker_machine_cmd('ip', cfg.machine_name, wsl=cfg.wsl),
        check=True,
        capture=True,
    )
    return res.stdout.strip()


def machine_ssh(cfg: NFSConfig, remote: str, *, check: bool = True) -> CmdResult:
    """Run a shell command inside the guest."""
    return run_cmd(
        docker_machine_cmd('ssh', cfg.machine_name, remote, wsl=cfg.wsl),
        check=check,
        capture=True,
        input_text='',
    )


def restart_machine(cfg: NFSConfig) -> None:
    if cfg.dry_run:
        log.info('DRYRUN: docker-machine restart {}', cfg.machine_name)
        return
    run_cmd(
        docker_machine_cmd('restart', cfg.machine_name, wsl=cfg.wsl),
        check=True,
        capture=True,
    )
    log.info('Restarted machine {}', cfg.machine_name)
