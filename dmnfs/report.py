"""Console output: progress steps, property lines and banners."""

from __future__ import annotations

import sys
import textwrap

import ubelt as ub

LOGO = r'''
                       ##         .
                 ## ## ##        ==               _   _ _____ ____
              ## ## ## ## ##    ===              | \ | |  ___/ ___|
          /""""""""""""""""""\___/ ===            |  \| | |_  \___ \
     ~~~ {~~ ~~~~ ~~~ ~~~~ ~~~ ~ /  ===- ~~~     | |\  |  _|  ___) |
          \______ o           __/                |_| \_|_|   |____/
            \    \         __/
             \____\_______/
'''

USAGE = textwrap.dedent(
    """
    Usage: docker-machine-nfs <machine-name> [options]

    Options:

      -f, --force               Force reconfiguration of nfs
      -n, --nfs-config          NFS configuration to use in /etc/exports. (default to '-alldirs -mapall=$(id -u):$(id -g)')
      -s, --shared-folder,...   Folder to share (default to /Users)
      -m, --mount-opts          NFS mount options (default to 'noacl,async,nfsvers=3')
      -i, --use-ip-range        Changes the nfs export ip to a range (e.g. -network 192.168.99.100 becomes -network 192.168.99)
      -p, --ip                  Configures the docker-machine to connect to your host machine via a specific ip address
      -t, --timeout             Configures how long the timeout should be for docker-machine commands
      --dry_run                 Print actions without running them
      --yes                     Do not ask before running sudo commands
      --config                  Defaults file (TOML)
      -v, --verbose             Increase log verbosity (-v, -vv)

    Examples:

      $ docker-machine-nfs test

        > Configure the /Users folder with NFS

      $ docker-machine-nfs test --shared-folder=/Users --shared-folder=/var/www

        > Configures the /Users and /var/www folder with NFS

      $ docker-machine-nfs test --shared-folder=/var/www --nfs-config="-alldirs -maproot=0"

        > Configure the /var/www folder with NFS and the options '-alldirs -maproot=0'

      $ docker-machine-nfs test --mount-opts="noacl,async,nolock,nfsvers=3,udp,noatime,actimeo=1"

        > Configure the /User folder with NFS and specific mount options.

      $ docker-machine-nfs test --ip 192.168.1.12

        > docker-machine will connect to your host machine via this address
    """
)


def _out(text: str, *, end: str = '\n') -> None:
    print(text, end=end, file=sys.stdout, flush=True)


def usage() -> str:
    return LOGO + USAGE


def step(label: str) -> None:
    """Start a progress line; finish it with :func:`ok`."""
    _out(ub.color_text('[INFO] ', 'blue') + f'{label} ... ', end='')


def ok(detail: str = 'OK') -> None:
    _out(ub.color_text(detail, 'green'))


def info(message: str) -> None:
    _out(ub.color_text('[INFO] ', 'blue') + message)


def warn(message: str) -> None:
    _out(ub.color_text(message, 'yellow'))


def fail(message: str) -> None:
    # A pending step line is still open when a step fails.
    _out(ub.color_text(f'FAIL\n\n{message}', 'red'), end='\n')


def prop(message: str) -> None:
    _out(ub.color_text(f'\t- {message}', 'magenta'))


def finish(machine_name: str) -> str:
    text = textwrap.dedent(
        f"""
        --------------------------------------------

         The docker-machine '{machine_name}'
         is now mounted with NFS!

         ENJOY high speed mounts :D

        --------------------------------------------
        """
    ).strip('\n')
    _out(ub.color_text(text, 'cyan'))
    return text
