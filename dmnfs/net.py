"""Driver-specific lookup of the host IP and network reachable from the guest."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from loguru import logger

from .config import NFSConfig
from .errors import ConfigurationError
from .machine import DriverKind, driver_kind
from .util import run_cmd

log = logger

SHARED_NETWORK = 'Shared'
NFSD_RESV_PORT_LINE = 'nfs.server.mount.require_resv_port = 0'


@dataclass(frozen=True)
class MachineDescriptor:
    name: str
    driver: str
    kind: DriverKind
    machine_ip: str
    network_id: str
    nfshost_ip: str


def _route_interface(target_ip: str) -> str:
    res = run_cmd(['route', 'get', target_ip], check=False, capture=True)
    for line in res.stdout.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == 'interface:':
            return parts[1]
    return ''


def _interface_inet(iface: str) -> str:
    res = run_cmd(['ifconfig', '-m', iface], check=False, capture=True)
    for line in res.stdout.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == 'inet':
            return parts[1]
    return ''


def route_host_ip(target_ip: str) -> str:
    """Return the inet address of the host interface that routes to ``target_ip``."""
    iface = _route_interface(target_ip)
    if not iface:
        log.debug('No route interface found for {}', target_ip)
        return ''
    return _interface_inet(iface)


def parallels_host_ip(network_id: str = SHARED_NETWORK) -> str:
    res = run_cmd(
        ['prlsrvctl', 'net', 'info', network_id], check=False, capture=True
    )
    for line in res.stdout.splitlines():
        if 'IPv4 address' in line and ': ' in line:
            return line.rsplit(': ', 1)[1].strip()
    return ''


def parse_machinereadable(text: str) -> dict[str, str]:
    """Parse ``VBoxManage showvminfo --machinereadable`` key/value output."""
    info: dict[str, str] = {}
    for raw in text.replace('\r', '').splitlines():
        if '=' not in raw:
            continue
        key, value = raw.split('=', 1)
        info.setdefault(key.strip().strip('"'), value.strip().strip('"'))
    return info


def _adapter_index(key: str) -> int:
    suffix = key[len('hostonlyadapter'):]
    return int(suffix) if suffix.isdigit() else 0


def virtualbox_network_id(name: str) -> str:
    res = run_cmd(
        ['VBoxManage', 'showvminfo', name, '--machinereadable'],
        check=False,
        capture=True,
    )
    info = parse_machinereadable(res.stdout)
    # Adapters are numbered from 1; the first host-only one carries NFS.
    keys = sorted(
        (k for k in info if k.startswith('hostonlyadapter')),
        key=_adapter_index,
    )
    for key in keys:
        if info[key]:
            return info[key]
    return ''


def parse_hostonlyifs(text: str) -> list[dict[str, str]]:
    """Split ``VBoxManage list hostonlyifs`` output into one dict per interface."""
    blocks: list[dict[str, str]] = []
    current: dict[str, str] = {}
    for raw in text.replace('\r', '').splitlines():
        line = raw.strip()
        if not line:
            if current:
                blocks.append(current)
                current = {}
            continue
        if ':' not in line:
            continue
        key, value = line.split(':', 1)
        key = key.strip()
        if key == 'Name' and current:
            blocks.append(current)
            current = {}
        current.setdefault(key, value.strip())
    if current:
        blocks.append(current)
    return blocks


def virtualbox_host_ip(network_id: str) -> str:
    res = run_cmd(
        ['VBoxManage', 'list', 'hostonlyifs'], check=False, capture=True
    )
    for block in parse_hostonlyifs(res.stdout):
        if block.get('Name') == network_id or block.get(
            'VBoxNetworkName', ''
        ).endswith(f'-{network_id}'):
            return block.get('IPAddress', '')
    return ''


def ensure_nfsd_resv_port(cfg: NFSConfig) -> bool:
    """Make sure nfsd accepts mounts from non-reserved ports.

    VMware guests connect from unprivileged source ports. The line is
    appended to the host nfs.conf, and the original file is copied to
    ``<nfs.conf>.bak`` the first time. Returns True when the file changed.
    """
    path = Path(cfg.paths.nfs_conf_file)
    content = path.read_text(encoding='utf-8') if path.exists() else ''
    if any(line.strip() == NFSD_RESV_PORT_LINE for line in content.splitlines()):
        log.info('{} is setup correctly', path)
        return False
    backup = Path(str(path) + '.bak')
    if cfg.dry_run:
        log.info(
            'DRYRUN: backup {} to {}; append {!r}',
            path,
            backup,
            NFSD_RESV_PORT_LINE,
        )
        return True
    log.warning('Sudo will be necessary for editing {}', path)
    if path.exists() and not backup.exists():
        run_cmd(['cp', str(path), str(backup)], sudo=True, check=True)
        log.warning('Backed up {} to {}', path, backup)
    prefix = '\n' if content and not content.endswith('\n') else ''
    run_cmd(
        ['tee', '-a', str(path)],
        sudo=True,
        check=True,
        input_text=f'{prefix}{NFSD_RESV_PORT_LINE}\n',
    )
    log.warning('Added {!r} to {}', NFSD_RESV_PORT_LINE, path)
    return True


def _resolve_vmware(
    cfg: NFSConfig, guest_ip: str, driver: str
) -> tuple[str, str]:
    host_ip = cfg.ip or route_host_ip(guest_ip)
    if not host_ip:
        raise ConfigurationError('Could not find the vmware fusion net IP!')
    if cfg.wsl:
        # haneWIN serves the exports on WSL and never reads nfs.conf.
        log.debug('Skipping {} on WSL', cfg.paths.nfs_conf_file)
    else:
        ensure_nfsd_resv_port(cfg)
    return SHARED_NETWORK, host_ip


def _resolve_shared_route(
    cfg: NFSConfig, guest_ip: str, driver: str
) -> tuple[str, str]:
    host_ip = cfg.ip or route_host_ip(guest_ip)
    if not host_ip:
        raise ConfigurationError(
            f'Could not find a route to the {driver} docker-machine'
        )
    return SHARED_NETWORK, host_ip


def _resolve_parallels(
    cfg: NFSConfig, guest_ip: str, driver: str
) -> tuple[str, str]:
    host_ip = cfg.ip or parallels_host_ip(SHARED_NETWORK)
    if not host_ip:
        raise ConfigurationError('Could not find the parallels net IP!')
    return SHARED_NETWORK, host_ip


def _resolve_virtualbox(
    cfg: NFSConfig, guest_ip: str, driver: str
) -> tuple[str, str]:
    network_id = virtualbox_network_id(cfg.machine_name)
    if not network_id:
        raise ConfigurationError('Could not find the virtualbox net name!')
    host_ip = virtualbox_host_ip(network_id)
    if not host_ip:
        raise ConfigurationError('Could not find the virtualbox net IP!')
    return network_id, host_ip


RESOLVERS: dict[
    DriverKind, Callable[[NFSConfig, str, str], tuple[str, str]]
] = {
    DriverKind.VMWARE: _resolve_vmware,
    DriverKind.SHARED_ROUTE: _resolve_shared_route,
    DriverKind.PARALLELS: _resolve_parallels,
    DriverKind.VIRTUALBOX: _resolve_virtualbox,
}


def resolve_topology(
    cfg: NFSConfig, *, driver: str, guest_ip: str
) -> MachineDescriptor:
    """Resolve the host side of the guest network for ``driver``."""
    kind = driver_kind(driver)
    if kind is None:
        raise ConfigurationError(f'Unsupported docker-machine driver: {driver}')
    if not guest_ip:
        raise ConfigurationError(
            f"Could not find the IP of machine '{cfg.machine_name}'!"
        )
    network_id, host_ip = RESOLVERS[kind](cfg, guest_ip, driver)
    desc = MachineDescriptor(
        name=cfg.machine_name,
        driver=driver,
        kind=kind,
        machine_ip=guest_ip,
        network_id=network_id,
        nfshost_ip=host_ip,
    )
    log.debug('Resolved machine topology: {}', desc)
    return desc
