"""Configure NFS shared folders for docker-machine VMs."""

__version__ = '2.0.0'
