"""Immutable run configuration and the optional TOML defaults file."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import ubelt as ub
from loguru import logger

from .errors import PreconditionError, UsageError
from .util import expand

log = logger

APPNAME = 'docker-machine-nfs'
DEFAULT_MOUNT_OPTS = 'noacl,async,nfsvers=3'
DEFAULT_SHARED_FOLDER = '/Users'
DEFAULT_SHARED_FOLDER_WSL = '/c/Users'
TOP_LEVEL_KEYS = (
    'shared_folders',
    'nfs_config',
    'mount_opts',
    'use_ip_range',
    'ip',
    'timeout',
    'verbosity',
)


def default_nfs_config() -> str:
    return f'-alldirs -mapall={os.getuid()}:{os.getgid()}'


@dataclass(frozen=True)
class PathsConfig:
    exports_file: str = '/etc/exports'
    nfs_conf_file: str = '/etc/nfs.conf'
    bootlocal_file: str = '/var/lib/boot2docker/bootlocal.sh'
    data_volume: str = '/System/Volumes/Data'
    default_mount: str = DEFAULT_SHARED_FOLDER


@dataclass(frozen=True)
class NFSConfig:
    machine_name: str
    shared_folders: tuple[str, ...] = (DEFAULT_SHARED_FOLDER,)
    nfs_config: str = field(default_factory=default_nfs_config)
    mount_opts: str = DEFAULT_MOUNT_OPTS
    force: bool = False
    use_ip_range: bool = False
    ip: str | None = None
    timeout: int | None = None
    dry_run: bool = False
    wsl: bool = False
    paths: PathsConfig = field(default_factory=PathsConfig)


def defaults_path() -> Path:
    return ub.Path.appdir(APPNAME, type='config') / 'config.toml'


def load_defaults(path: Path | None = None, *, machine_name: str = '') -> dict:
    """Read the defaults file and merge the per-machine table over it.

    A missing file yields an empty dict. Unknown keys are ignored with a
    warning so that a stale file never blocks a run.
    """
    explicit = path is not None
    path = Path(path) if path is not None else defaults_path()
    if not path.exists():
        if explicit:
            raise UsageError(f'Config not found: {path}')
        return {}
    try:
        raw = tomllib.loads(path.read_text(encoding='utf-8'))
    except tomllib.TOMLDecodeError as ex:
        raise UsageError(f'Invalid config file {path}: {ex}') from ex
    log.debug('Loaded defaults from {}', path)
    merged: dict[str, Any] = {}
    for key, value in raw.items():
        if key in TOP_LEVEL_KEYS:
            merged[key] = value
        elif key not in ('paths', 'machines'):
            log.warning('Ignoring unknown key {!r} in {}', key, path)
    machines = raw.get('machines', {})
    if machine_name and isinstance(machines, dict):
        override = machines.get(machine_name, {})
        if isinstance(override, dict):
            for key, value in override.items():
                if key in TOP_LEVEL_KEYS:
                    merged[key] = value
                elif key != 'paths':
                    log.warning(
                        'Ignoring unknown key {!r} in [machines.{}]',
                        key,
                        machine_name,
                    )
    paths: dict[str, Any] = {}
    if isinstance(raw.get('paths'), dict):
        paths.update(raw['paths'])
    if machine_name and isinstance(machines, dict):
        override = machines.get(machine_name, {})
        if isinstance(override, dict) and isinstance(override.get('paths'), dict):
            paths.update(override['paths'])
    if paths:
        merged['paths'] = paths
    return merged


def _paths_from(raw: dict | None, *, wsl: bool) -> PathsConfig:
    paths = PathsConfig()
    if wsl:
        paths = replace(paths, default_mount=DEFAULT_SHARED_FOLDER_WSL)
    if not raw:
        return paths
    known = {f.name for f in fields(PathsConfig)}
    updates = {k: expand(str(v)) for k, v in raw.items() if k in known}
    return replace(paths, **updates)


def _parse_timeout(value: Any) -> int | None:
    if value in (None, ''):
        return None
    try:
        timeout = int(value)
    except (TypeError, ValueError) as ex:
        raise UsageError(f'Invalid timeout {value!r}; expected seconds.') from ex
    if timeout <= 0:
        raise UsageError(f'Invalid timeout {timeout}; must be positive.')
    return timeout


def _normalize_folders(folders) -> tuple[str, ...]:
    if isinstance(folders, str):
        folders = [folders]
    seen: set[str] = set()
    out: list[str] = []
    for raw in folders or []:
        folder = str(raw).strip()
        if len(folder) > 1:
            folder = folder.rstrip('/')
        if not folder or folder in seen:
            continue
        seen.add(folder)
        out.append(folder)
    return tuple(out)


def resolve_config(
    machine_name: str,
    *,
    shared_folders=None,
    nfs_config: str | None = None,
    mount_opts: str | None = None,
    force: bool = False,
    use_ip_range: bool | None = None,
    ip: str | None = None,
    timeout: Any = None,
    dry_run: bool = False,
    wsl: bool = False,
    defaults: dict | None = None,
) -> NFSConfig:
    """Build the run configuration.

    Precedence for every value is: explicit argument, then ``defaults`` (as
    returned by :func:`load_defaults`), then the built-in default.
    """
    machine_name = (machine_name or '').strip()
    if not machine_name:
        raise UsageError('A machine name is required.')
    defaults = defaults or {}
    paths = _paths_from(defaults.get('paths'), wsl=wsl)

    folders = _normalize_folders(shared_folders)
    if not folders:
        folders = _normalize_folders(defaults.get('shared_folders'))
    if not folders:
        folders = (paths.default_mount,)
    for folder in folders:
        if not os.path.isdir(folder):
            raise PreconditionError(
                f"Given shared folder '{folder}' does not exist!"
            )

    if use_ip_range is None:
        use_ip_range = bool(defaults.get('use_ip_range', False))
    ip = (ip or defaults.get('ip') or '').strip() or None
    if timeout in (None, ''):
        timeout = defaults.get('timeout')

    return NFSConfig(
        machine_name=machine_name,
        shared_folders=folders,
        nfs_config=nfs_config or defaults.get('nfs_config')
        or default_nfs_config(),
        mount_opts=mount_opts or defaults.get('mount_opts')
        or DEFAULT_MOUNT_OPTS,
        force=bool(force),
        use_ip_range=bool(use_ip_range),
        ip=ip,
        timeout=_parse_timeout(timeout),
        dry_run=bool(dry_run),
        wsl=bool(wsl),
        paths=paths,
    )
