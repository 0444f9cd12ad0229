"""Host NFS export table editing with per-machine sentinel blocks."""

from __future__ import annotations

import ntpath
import os
import time
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .config import NFSConfig
from .errors import ExternalToolError
from .net import MachineDescriptor
from .util import CmdError, run_cmd

log = logger

BEGIN_TEMPLATE = '# docker-machine-nfs-begin {} #'
END_TEMPLATE = '# docker-machine-nfs-end {} #'
NFSD_SETTLE_S = 2.0
WSL_EXPORT_OPTS = '-alldirs -exec -mapall:1000,1000'
WSL_EXPORT_TAG = '#Added by docker-machine-nfs'


def resolve_host_path(path: str, data_volume: str = '/System/Volumes/Data') -> str:
    """Return the APFS firmlink target of ``path`` if one exists."""
    if data_volume:
        firmlinked = data_volume.rstrip('/') + path
        if os.path.isdir(firmlinked):
            return firmlinked
    return path


def export_target(machine_ip: str, use_ip_range: bool) -> str:
    if use_ip_range:
        return f'-network {machine_ip.rsplit(".", 1)[0]}'
    return machine_ip


@dataclass(frozen=True)
class ExportBlock:
    machine_name: str
    lines: tuple[str, ...]

    @property
    def begin(self) -> str:
        return BEGIN_TEMPLATE.format(self.machine_name)

    @property
    def end(self) -> str:
        return END_TEMPLATE.format(self.machine_name)

    def render(self) -> str:
        return '\n'.join([self.begin, *self.lines, self.end])


def build_export_block(cfg: NFSConfig, desc: MachineDescriptor) -> ExportBlock:
    target = export_target(desc.machine_ip, cfg.use_ip_range)
    lines = tuple(
        f'"{resolve_host_path(folder, cfg.paths.data_volume)}" '
        f'{target} {cfg.nfs_config}'
        for folder in cfg.shared_folders
    )
    return ExportBlock(cfg.machine_name, lines)


def remove_block(content: str, machine_name: str) -> str:
    """Drop every sentinel block for ``machine_name`` from ``content``.

    A begin marker is only paired with the next end marker when no other
    begin marker for the machine comes first. Unpaired markers are dropped on
    their own and the lines around them are kept.
    """
    begin = BEGIN_TEMPLATE.format(machine_name)
    end = END_TEMPLATE.format(machine_name)
    kept: list[str] = []
    pending: list[str] | None = None
    changed = False
    for line in content.splitlines():
        marker = line.strip()
        if marker == begin:
            if pending is not None:
                log.warning('Dropping unterminated {!r}', begin)
                kept.extend(pending[1:])
            pending = [line]
            changed = True
        elif marker == end:
            if pending is None:
                log.warning('Dropping {!r} without a begin marker', end)
            pending = None
            changed = True
        elif pending is not None:
            pending.append(line)
        else:
            kept.append(line)
    if pending is not None:
        log.warning('Dropping unterminated {!r}', begin)
        kept.extend(pending[1:])
    if not changed:
        return content
    return '\n'.join(kept)


def replace_block(content: str, block: ExportBlock) -> str:
    remaining = remove_block(content, block.machine_name).splitlines()
    while remaining and not remaining[-1].strip():
        remaining.pop()
    head = '\n'.join(remaining)
    if head:
        head += '\n'
    return head + block.render() + '\n'


def read_exports(path: Path) -> str:
    if not path.exists():
        return ''
    return path.read_text(encoding='utf-8')


def write_exports(cfg: NFSConfig, text: str) -> None:
    path = cfg.paths.exports_file
    if cfg.dry_run:
        log.info('DRYRUN: write {}:\n{}', path, text.rstrip())
        return
    log.warning('Sudo will be necessary for editing {}', path)
    run_cmd(['tee', path], sudo=True, check=True, input_text=text)


def restart_nfsd(cfg: NFSConfig, *, settle_s: float = NFSD_SETTLE_S) -> None:
    if cfg.dry_run:
        log.info('DRYRUN: nfsd stop; nfsd start; nfsd checkexports')
        return
    # stop fails when nfsd is not running yet; start below still has to work.
    run_cmd(['nfsd', 'stop'], sudo=True, check=False)
    run_cmd(['nfsd', 'start'], sudo=True, check=True)
    time.sleep(settle_s)
    try:
        run_cmd(['nfsd', 'checkexports'], sudo=True, check=True)
    except CmdError as ex:
        raise ExternalToolError(
            f'nfsd rejected {cfg.paths.exports_file}:\n'
            f'{(ex.result.stderr or ex.result.stdout).strip()}'
        ) from ex
    log.info('nfsd restarted and exports validated')


def configure_exports(cfg: NFSConfig, desc: MachineDescriptor) -> ExportBlock:
    """Rewrite this machine's block in the host exports file and reload nfsd."""
    block = build_export_block(cfg, desc)
    path = Path(cfg.paths.exports_file)
    text = replace_block(read_exports(path), block)
    write_exports(cfg, text)
    restart_nfsd(cfg)
    return block


def hanewin_exports_path() -> Path:
    """Locate the exports file of the haneWIN NFS server from WSL."""
    res = run_cmd(['sc.exe', 'qc', 'nfsserver'], check=True, capture=True)
    binary = ''
    for line in res.stdout.replace('\r', '').splitlines():
        if 'BINARY_PATH_NAME' in line and ' : ' in line:
            binary = line.split(' : ', 1)[1].strip().strip('"')
            break
    if not binary:
        raise ExternalToolError(
            'Could not locate the haneWIN nfsserver service binary'
        )
    win_dir = ntpath.dirname(binary)
    res = run_cmd(['wslpath', '-a', win_dir], check=True, capture=True)
    return Path(res.stdout.replace('\r', '').strip()) / 'exports'


def wsl_export_line(folder: str) -> str:
    res = run_cmd(['wslpath', '-w', folder], check=True, capture=True)
    win_folder = res.stdout.replace('\r', '').strip()
    return f'{win_folder} {WSL_EXPORT_OPTS} {WSL_EXPORT_TAG}'


def configure_exports_wsl(cfg: NFSConfig) -> list[str]:
    """Append shared folders to the haneWIN exports file and restart it.

    Returns the output of the service restart commands.
    """
    path = hanewin_exports_path()
    if not path.exists():
        raise ExternalToolError(
            f'Configuration file was not found in {path}, '
            'please check installation of haneWin server'
        )
    existing = set(read_exports(path).splitlines())
    new_lines = [
        line
        for line in (wsl_export_line(f) for f in cfg.shared_folders)
        if line not in existing
    ]
    if cfg.dry_run:
        log.info('DRYRUN: append to {}: {}', path, new_lines)
        return []
    if new_lines:
        with path.open('a', encoding='utf-8') as file:
            file.write(''.join(line + '\n' for line in new_lines))
    outputs = []
    stop = run_cmd(['net.exe', 'stop', 'nfsserver'], check=False, capture=True)
    outputs.append(stop.stdout.strip())
    start = run_cmd(['net.exe', 'start', 'nfsserver'], check=True, capture=True)
    outputs.append(start.stdout.strip())
    return [out for out in outputs if out]
