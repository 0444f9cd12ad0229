from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ..errors import DMNFSError, UsageError
from ..host import refresh_sudo

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None,
        type=str,
        help='Path to a defaults TOML (default: user config dir).',
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )
    yes = scfg.Value(
        False,
        isflag=True,
        help='Auto-approve privileged host operations (sudo).',
    )


def _confirm_sudo_block(*, yes: bool, purpose: str) -> None:
    if yes or os.geteuid() == 0:
        return
    if not sys.stdin.isatty():
        raise UsageError(
            'Privileged host operations require confirmation, but stdin is not interactive. '
            'Re-run with --yes.'
        )
    print('About to run privileged host operations via sudo:')
    print(f'  {purpose}')
    ans = input('Continue? [y/N]: ').strip().lower()
    if ans not in {'y', 'yes'}:
        raise DMNFSError('Aborted by user.')


class _SudoSession:
    """Ask for sudo approval at most once per run."""

    def __init__(self, *, yes: bool, dry_run: bool):
        self.yes = yes
        self.dry_run = dry_run
        self.ready = False

    def ensure(self, purpose: str) -> None:
        if self.ready or self.dry_run:
            return
        _confirm_sudo_block(yes=self.yes, purpose=purpose)
        refresh_sudo()
        self.ready = True
