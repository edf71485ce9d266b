"""
omti - GitHub repository and PostgreSQL backup helper

This package provides a CLI tool that drives system commands (gh, git, ssh,
pg_dump) to create and tag GitHub repositories and to back up PostgreSQL
databases, either directly or through an SSH tunnel. It has zero external
Python dependencies and only uses the Python standard library.

Main features:
- Create a GitHub repository and push a local folder as the first commit
- Tag the latest commit of a remote branch
- pg_dump backups in custom archive format, locally or over SSH
- Environment checks that install missing tools with brew or apt
- Optional JSON config file

Usage:
    omti repo create my-project ./my-project
    omti repo tag v1.0.0 main ./my-project
    omti db backup user:pass@localhost:5432/app ./backups --remote admin@db.example.com:5432
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .backup import BackupTool, PgDumpTool, SSHTunnel
from .preflight import Preflight
from .repo import RepositoryManager

__all__ = [
    "BackupTool",
    "PgDumpTool",
    "Preflight",
    "RepositoryManager",
    "SSHTunnel",
]
