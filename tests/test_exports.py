"""Tests for the host exports file editing."""

from __future__ import annotations

from pathlib import Path

import pytest

from dmnfs.config import NFSConfig, PathsConfig
from dmnfs.errors import ExternalToolError
from dmnfs.exports import (
    ExportBlock,
    build_export_block,
    configure_exports,
    configure_exports_wsl,
    export_target,
    remove_block,
    replace_block,
    resolve_host_path,
)
from dmnfs.machine import DriverKind
from dmnfs.net import MachineDescriptor
from dmnfs.util import CmdError, CmdResult

DESC = MachineDescriptor(
    name='test',
    driver='virtualbox',
    kind=DriverKind.VIRTUALBOX,
    machine_ip='192.168.99.100',
    network_id='vboxnet0',
    nfshost_ip='192.168.99.1',
)


def _cfg(tmp_path: Path, folders, **kw) -> NFSConfig:
    paths = PathsConfig(
        exports_file=str(tmp_path / 'exports'),
        data_volume=str(tmp_path / 'Data'),
    )
    return NFSConfig(
        'test',
        shared_folders=tuple(str(f) for f in folders),
        nfs_config='-alldirs -mapall=501:20',
        paths=paths,
        **kw,
    )


class FakeHost:
    """Stands in for sudo tee / nfsd on the host."""

    def __init__(self, fail_checkexports: bool = False):
        self.calls: list[list[str]] = []
        self.fail_checkexports = fail_checkexports

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        if cmd[0] == 'tee':
            Path(cmd[-1]).write_text(kwargs['input_text'], encoding='utf-8')
        if cmd == ['nfsd', 'checkexports'] and self.fail_checkexports:
            res = CmdResult(1, '', 'exports:3: bad path')
            raise CmdError(cmd, res)
        return CmdResult(0, '', '')


@pytest.fixture
def host(monkeypatch):
    fake = FakeHost()
    monkeypatch.setattr('dmnfs.exports.run_cmd', fake)
    monkeypatch.setattr('dmnfs.exports.time.sleep', lambda s: None)
    return fake


def test_export_target_range_mode() -> None:
    assert export_target('192.168.99.100', True) == '-network 192.168.99'
    assert export_target('192.168.99.100', False) == '192.168.99.100'


def test_resolve_host_path_firmlink(tmp_path: Path) -> None:
    data = tmp_path / 'System' / 'Volumes' / 'Data'
    user_dir = '/Users/x'
    assert resolve_host_path(user_dir, str(data)) == user_dir
    (data / 'Users' / 'x').mkdir(parents=True)
    assert resolve_host_path(user_dir, str(data)) == str(data) + user_dir
    assert resolve_host_path(user_dir, '') == user_dir


def test_build_export_block_lines(tmp_path: Path) -> None:
    a = tmp_path / 'a'
    b = tmp_path / 'b'
    cfg = _cfg(tmp_path, [b, a], use_ip_range=True)
    block = build_export_block(cfg, DESC)
    assert block.lines == (
        f'"{b}" -network 192.168.99 -alldirs -mapall=501:20',
        f'"{a}" -network 192.168.99 -alldirs -mapall=501:20',
    )
    assert block.render().splitlines()[0] == '# docker-machine-nfs-begin test #'
    assert block.render().splitlines()[-1] == '# docker-machine-nfs-end test #'


def test_remove_block_leaves_other_content() -> None:
    content = '\n'.join(
        [
            '/opt -alldirs',
            '# docker-machine-nfs-begin other #',
            '"/Users" 10.0.0.2 -alldirs',
            '# docker-machine-nfs-end other #',
            '# docker-machine-nfs-begin test #',
            '"/Users" 10.0.0.3 -alldirs',
            '"/var/www" 10.0.0.3 -alldirs',
            '# docker-machine-nfs-end test #',
            '/srv -ro',
        ]
    )
    got = remove_block(content, 'test')
    assert got.splitlines() == [
        '/opt -alldirs',
        '# docker-machine-nfs-begin other #',
        '"/Users" 10.0.0.2 -alldirs',
        '# docker-machine-nfs-end other #',
        '/srv -ro',
    ]


def test_remove_block_unterminated_keeps_surrounding_lines() -> None:
    content = '/opt\n# docker-machine-nfs-begin test #\n"/Users" 1.2.3.4\n'
    assert remove_block(content, 'test') == '/opt\n"/Users" 1.2.3.4'


def test_remove_block_stray_markers_keep_unrelated_lines() -> None:
    content = '\n'.join(
        [
            '# docker-machine-nfs-end test #',
            '/opt',
            '# docker-machine-nfs-begin test #',
            '/srv -ro',
            '# docker-machine-nfs-begin test #',
            '"/Users" 1.2.3.4',
            '# docker-machine-nfs-end test #',
            '/var -ro',
        ]
    )
    assert remove_block(content, 'test').splitlines() == [
        '/opt',
        '/srv -ro',
        '/var -ro',
    ]


def test_replace_block_rerun_after_unterminated_begin() -> None:
    block = ExportBlock('test', ('"/Users" 1.2.3.4 -alldirs',))
    content = '/opt\n# docker-machine-nfs-begin test #\n/srv -ro\n'
    first = replace_block(content, block)
    second = replace_block(first, block)
    assert second == first
    assert first == (
        '/opt\n'
        '/srv -ro\n'
        '# docker-machine-nfs-begin test #\n'
        '"/Users" 1.2.3.4 -alldirs\n'
        '# docker-machine-nfs-end test #\n'
    )


def test_remove_block_drops_duplicates() -> None:
    block = ExportBlock('test', ('"/a" 1.2.3.4',)).render()
    content = f'{block}\n/keep\n{block}\n'
    assert remove_block(content, 'test') == '/keep'


def test_replace_block_appends_after_existing_content() -> None:
    block = ExportBlock('test', ('"/a" 1.2.3.4 -alldirs',))
    got = replace_block('/opt -alldirs\n\n\n', block)
    assert got == (
        '/opt -alldirs\n'
        '# docker-machine-nfs-begin test #\n'
        '"/a" 1.2.3.4 -alldirs\n'
        '# docker-machine-nfs-end test #\n'
    )
    assert replace_block('', block) == block.render() + '\n'


def test_configure_exports_is_idempotent(tmp_path: Path, host) -> None:
    exports = tmp_path / 'exports'
    exports.write_text('/opt -alldirs\n', encoding='utf-8')
    folder = tmp_path / 'Users'
    folder.mkdir()
    cfg = _cfg(tmp_path, [folder])
    configure_exports(cfg, DESC)
    first = exports.read_bytes()
    configure_exports(cfg, DESC)
    assert exports.read_bytes() == first
    text = first.decode()
    assert text.startswith('/opt -alldirs\n# docker-machine-nfs-begin test #\n')
    assert f'"{folder}" 192.168.99.100 -alldirs -mapall=501:20\n' in text
    assert host.calls[:4] == [
        ['tee', str(exports)],
        ['nfsd', 'stop'],
        ['nfsd', 'start'],
        ['nfsd', 'checkexports'],
    ]


def test_configure_exports_replaces_old_folder_set(tmp_path: Path, host) -> None:
    exports = tmp_path / 'exports'
    old = tmp_path / 'old'
    new = tmp_path / 'new'
    configure_exports(_cfg(tmp_path, [old, tmp_path]), DESC)
    configure_exports(_cfg(tmp_path, [new]), DESC)
    text = exports.read_text(encoding='utf-8')
    assert f'"{old}"' not in text
    assert f'"{tmp_path}"' not in text
    assert f'"{new}"' in text
    assert text.count('# docker-machine-nfs-begin test #') == 1


def test_configure_exports_uses_firmlink_target(tmp_path: Path, host) -> None:
    folder = tmp_path / 'Users'
    folder.mkdir()
    target = Path(str(tmp_path / 'Data') + str(folder))
    target.mkdir(parents=True)
    configure_exports(_cfg(tmp_path, [folder]), DESC)
    text = (tmp_path / 'exports').read_text(encoding='utf-8')
    assert f'"{target}" 192.168.99.100' in text


def test_configure_exports_checkexports_failure(tmp_path: Path, monkeypatch) -> None:
    fake = FakeHost(fail_checkexports=True)
    monkeypatch.setattr('dmnfs.exports.run_cmd', fake)
    monkeypatch.setattr('dmnfs.exports.time.sleep', lambda s: None)
    with pytest.raises(ExternalToolError, match='bad path'):
        configure_exports(_cfg(tmp_path, [tmp_path]), DESC)


def test_configure_exports_dry_run(tmp_path: Path, host) -> None:
    configure_exports(_cfg(tmp_path, [tmp_path], dry_run=True), DESC)
    assert host.calls == []
    assert not (tmp_path / 'exports').exists()


def test_configure_exports_wsl(tmp_path: Path, monkeypatch) -> None:
    hanewin = tmp_path / 'nfsd'
    hanewin.mkdir()
    (hanewin / 'exports').write_text('C:\\data -alldirs\n', encoding='utf-8')
    calls = []

    def fake_run_cmd(cmd, **kwargs):
        calls.append(cmd)
        if cmd[0] == 'sc.exe':
            out = (
                'SERVICE_NAME: nfsserver\r\n'
                '        BINARY_PATH_NAME   : C:\\Program Files\\nfsd\\nfsd.exe\r\n'
            )
            return CmdResult(0, out, '')
        if cmd[:2] == ['wslpath', '-a']:
            assert cmd[2] == 'C:\\Program Files\\nfsd'
            return CmdResult(0, f'{hanewin}\r\n', '')
        if cmd[:2] == ['wslpath', '-w']:
            return CmdResult(0, 'C:\\Users\r\n', '')
        return CmdResult(0, f'{cmd[1]} ok', '')

    monkeypatch.setattr('dmnfs.exports.run_cmd', fake_run_cmd)
    cfg = NFSConfig('test', shared_folders=('/c/Users',), wsl=True)
    assert configure_exports_wsl(cfg) == ['stop ok', 'start ok']
    configure_exports_wsl(cfg)
    lines = (hanewin / 'exports').read_text(encoding='utf-8').splitlines()
    assert lines == [
        'C:\\data -alldirs',
        'C:\\Users -alldirs -exec -mapall:1000,1000 #Added by docker-machine-nfs',
    ]
    assert ['net.exe', 'start', 'nfsserver'] in calls


def test_configure_exports_wsl_missing_file(tmp_path: Path, monkeypatch) -> None:
    def fake_run_cmd(cmd, **kwargs):
        if cmd[0] == 'sc.exe':
            return CmdResult(0, 'BINARY_PATH_NAME   : C:\\nfsd\\nfsd.exe', '')
        return CmdResult(0, str(tmp_path / 'missing'), '')

    monkeypatch.setattr('dmnfs.exports.run_cmd', fake_run_cmd)
    cfg = NFSConfig('test', shared_folders=('/c/Users',), wsl=True)
    with pytest.raises(ExternalToolError, match='haneWin'):
        configure_exports_wsl(cfg)
