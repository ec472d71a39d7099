"""mediabackup - Back up local media items to a remote object store."""

__version__ = "0.1.0"
