"""Top-level CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import re
import sys

import scriptconfig as scfg
from loguru import logger

from .. import report
from ..bootlocal import install_bootlocal
from ..config import NFSConfig, load_defaults, resolve_config
from ..errors import DMNFSError, UsageError
from ..exports import configure_exports, configure_exports_wsl
from ..host import check_commands, check_driver_commands
from ..machine import (
    DriverKind,
    check_machine_presence,
    check_machine_running,
    driver_kind,
    machine_driver,
    machine_ip,
    restart_machine,
)
from ..net import MachineDescriptor, resolve_topology
from ..runtime import is_wsl
from ..verify import is_nfs_mounted, verify_nfs_mount
from ._common import _BaseCommand, _SudoSession, log


class NFSCLI(_BaseCommand):
    """Configure NFS shared folders for a docker-machine VM."""

    machine_name = scfg.Value(
        '', type=str, position=1, help='Name of the docker-machine.'
    )
    shared_folder = scfg.Value(
        [],
        type=str,
        nargs='*',
        help='Folder(s) to share (default: /Users, or /c/Users on WSL).',
    )
    nfs_config = scfg.Value(
        None,
        type=str,
        help="Export options for /etc/exports (default: '-alldirs -mapall=$(id -u):$(id -g)').",
    )
    mount_opts = scfg.Value(
        None,
        type=str,
        help="NFS mount options (default: 'noacl,async,nfsvers=3').",
    )
    force = scfg.Value(
        False, isflag=True, help='Force reconfiguration of NFS.'
    )
    use_ip_range = scfg.Value(
        False,
        isflag=True,
        help='Export to the /24 network of the machine instead of its IP.',
    )
    ip = scfg.Value(
        None, type=str, help='Host IP address the machine connects to.'
    )
    timeout = scfg.Value(
        None, type=str, help='Timeout in seconds for docker-machine ls.'
    )
    dry_run = scfg.Value(
        False, isflag=True, help='Print actions without running.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        # The config field replaces the built-in --config/--dump options.
        args = cls.cli(argv=argv, data=kwargs, special_options=False)
        wsl = is_wsl()
        if wsl:
            report.info('Platform WSL detected')
        defaults = load_defaults(
            args.config, machine_name=str(args.machine_name or '')
        )
        cfg = resolve_config(
            args.machine_name,
            shared_folders=list(args.shared_folder or []),
            nfs_config=args.nfs_config,
            mount_opts=args.mount_opts,
            force=args.force,
            use_ip_range=True if args.use_ip_range else None,
            ip=args.ip,
            timeout=args.timeout,
            dry_run=args.dry_run,
            wsl=wsl,
            defaults=defaults,
        )
        _print_configuration(cfg)
        missing = check_commands(wsl=cfg.wsl)
        if missing:
            log.warning('Missing host commands: {}', ', '.join(missing))
        return _configure(cfg, yes=bool(args.yes))


def _print_configuration(cfg: NFSConfig) -> None:
    report.info('Configuration:')
    print()
    report.prop(f'Machine Name: {cfg.machine_name}')
    for folder in cfg.shared_folders:
        report.prop(f'Shared Folder: {folder}')
    report.prop(f'Mount Options: {cfg.mount_opts}')
    report.prop(f'Force: {str(cfg.force).lower()}')
    if cfg.dry_run:
        report.prop('Dry Run: true')
    print()


def _lookup(cfg: NFSConfig, sudo: _SudoSession) -> MachineDescriptor:
    driver = machine_driver(cfg)
    kind = driver_kind(driver)
    if kind is not None:
        missing = check_driver_commands(kind, ip_override=bool(cfg.ip))
        if missing:
            log.warning(
                'Missing host commands for driver {}: {}',
                driver,
                ', '.join(missing),
            )
    if kind is DriverKind.VMWARE and not cfg.wsl:
        sudo.ensure(f'Check/update {cfg.paths.nfs_conf_file} for nfsd.')
    return resolve_topology(cfg, driver=driver, guest_ip=machine_ip(cfg))


def _configure(cfg: NFSConfig, *, yes: bool = False) -> int:
    """Run every configuration step in order; raises DMNFSError on failure."""
    sudo = _SudoSession(yes=yes, dry_run=cfg.dry_run)

    report.step('machine presence')
    check_machine_presence(cfg)
    report.ok()

    report.step('machine running')
    check_machine_running(cfg)
    report.ok()

    report.step('Lookup mandatory properties')
    desc = _lookup(cfg, sudo)
    report.ok()

    if not cfg.force and is_nfs_mounted(cfg, desc):
        report.ok('\n NFS already mounted.')
        report.finish(cfg.machine_name)
        return 0

    print()
    report.prop(f'Machine IP: {desc.machine_ip}')
    report.prop(f'Network ID: {desc.network_id}')
    report.prop(f'NFSHost IP: {desc.nfshost_ip}')
    print()

    report.info('Configure NFS ...')
    if cfg.wsl:
        for line in configure_exports_wsl(cfg):
            report.prop(line)
    else:
        sudo.ensure(f'Edit {cfg.paths.exports_file} and restart nfsd.')
        configure_exports(cfg, desc)
    report.step('NFS server')
    report.ok()

    report.step('Configure Docker Machine')
    install_bootlocal(cfg, desc)
    report.ok()

    report.step('Restart Docker Machine')
    restart_machine(cfg)
    report.ok()

    report.step('Verify NFS mount')
    verify_nfs_mount(cfg, desc)
    report.ok()

    report.finish(cfg.machine_name)
    return 0


def main(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[1:]
    if any(flag in argv for flag in ('-h', '--help')):
        print(report.usage())
        sys.exit(0)
    try:
        argv = _normalize_argv(argv)
    except UsageError as ex:
        _setup_logging(0, 0)
        _usage_exit(ex)

    verbosity = 0
    try:
        defaults = load_defaults(
            _config_arg(argv), machine_name=_machine_arg(argv)
        )
        verbosity = int(defaults.get('verbosity', 0))
    except (DMNFSError, TypeError, ValueError):
        verbosity = 0
    _setup_logging(_count_verbose(argv), verbosity)

    try:
        rc = NFSCLI.main(argv=argv)
    except UsageError as ex:
        _usage_exit(ex)
    except DMNFSError as ex:
        report.fail(str(ex))
        log.error('docker-machine-nfs failed: {}', ex)
        sys.exit(1)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def _usage_exit(ex: UsageError) -> None:
    report.fail(str(ex))
    print(report.usage())
    log.debug('Usage error: {}', ex)
    sys.exit(1)


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


_VALUE_OPTIONS = {
    '-s': 'shared_folder',
    '--shared-folder': 'shared_folder',
    '--shared_folder': 'shared_folder',
    '-n': 'nfs_config',
    '--nfs-config': 'nfs_config',
    '--nfs_config': 'nfs_config',
    '-m': 'mount_opts',
    '--mount-opts': 'mount_opts',
    '--mount_opts': 'mount_opts',
    '-p': 'ip',
    '--ip': 'ip',
    '-t': 'timeout',
    '--timeout': 'timeout',
    '--config': 'config',
    '-c': 'config',
}
_FLAG_OPTIONS = {
    '-f': 'force',
    '--force': 'force',
    '-i': 'use_ip_range',
    '--use-ip-range': 'use_ip_range',
    '--use_ip_range': 'use_ip_range',
    '--dry-run': 'dry_run',
    '--dry_run': 'dry_run',
    '--yes': 'yes',
    '-y': 'yes',
    '--verbose': 'verbose',
}
_SHORT_VERBOSE = re.compile(r'^-v+$')


def _normalize_argv(argv: list[str]) -> list[str]:
    """Map the accepted option spellings onto scriptconfig option names.

    Repeated ``--shared-folder`` values are gathered into one list option and
    values are attached with ``=`` so that export options starting with a
    dash are not mistaken for flags.
    """
    positional: list[str] = []
    options: list[str] = []
    folders: list[str] = []
    idx = 0
    while idx < len(argv):
        tok = argv[idx]
        idx += 1
        if tok == '--':
            positional.extend(argv[idx:])
            break
        if not tok.startswith('-') or tok == '-':
            positional.append(tok)
            continue
        if _SHORT_VERBOSE.match(tok):
            options.append(tok)
            continue
        name, eq, value = tok.partition('=')
        if name in _FLAG_OPTIONS and not eq:
            options.append('--' + _FLAG_OPTIONS[name])
            continue
        if name in _VALUE_OPTIONS:
            key = _VALUE_OPTIONS[name]
            if not eq:
                if idx >= len(argv):
                    raise UsageError(f"Missing value for argument '{name}'")
                value = argv[idx]
                idx += 1
            if key == 'shared_folder':
                folders.append(value)
            else:
                options.append(f'--{key}={value}')
            continue
        raise UsageError(f"Unknown argument '{tok}' given")
    if len(positional) > 1:
        raise UsageError(f"Unknown argument '{positional[1]}' given")
    if folders:
        options.extend(['--shared_folder', *folders])
    return positional + options


def _config_arg(argv: list[str]) -> str | None:
    for item in argv:
        if item.startswith('--config='):
            return item.split('=', 1)[1]
    return None


def _machine_arg(argv: list[str]) -> str:
    if argv and not argv[0].startswith('-'):
        return argv[0]
    return ''


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif _SHORT_VERBOSE.match(item):
            count += len(item) - 1
    return count
