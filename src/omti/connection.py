"""
Parsing of database and remote host descriptors given on the command line
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from .errors import ParseError

DEFAULT_DUMP_EXTENSION = '.dump'


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Database connection parsed from user:password@host:port/dbname"""
    user: str
    password: str
    host: str
    port: str
    dbname: str

    def redacted(self) -> str:
        return f"{self.user}:***@{self.host}:{self.port}/{self.dbname}"


@dataclass(frozen=True)
class RemoteDescriptor:
    """SSH endpoint parsed from user@host:port

    port is the database port on the remote host, not the SSH port.
    """
    user: str
    host: str
    port: str

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}"


def _split(text: str, sep: str, segment: str) -> List[str]:
    parts = text.split(sep)
    if len(parts) != 2:
        raise ParseError(f"missing or invalid {segment} format")
    return parts


def _require_fields(segment: str, **fields: str):
    empty = [name for name, value in fields.items() if not value]
    if empty:
        raise ParseError(f"empty {', '.join(empty)} in {segment}")


def parse_connection_string(text: str) -> ConnectionDescriptor:
    """Parse <user>:<password>@<host>:<port>/<dbname>

    Raises ParseError naming the malformed segment. There is no escaping,
    so none of the fields may contain the separators themselves.
    """
    user_pass, host_port_db = _split(text, '@', 'user and host')
    user, password = _split(user_pass, ':', 'username and password')
    host, port_db = _split(host_port_db, ':', 'host and port')
    port, dbname = _split(port_db, '/', 'database name')

    _require_fields('database configuration', user=user, password=password,
                    host=host, port=port, dbname=dbname)
    return ConnectionDescriptor(user=user, password=password, host=host,
                                port=port, dbname=dbname)


def parse_remote_string(text: str) -> RemoteDescriptor:
    """Parse <user>@<host>:<db_port>"""
    user, host_port = _split(text, '@', 'remote user and host')
    host, port = _split(host_port, ':', 'host and port')

    _require_fields('remote', user=user, host=host, port=port)
    return RemoteDescriptor(user=user, host=host, port=port)


def backup_artifact_path(dest_dir: Union[str, Path], dbname: str,
                         extension: str = DEFAULT_DUMP_EXTENSION,
                         now: Optional[datetime] = None) -> Path:
    """Build <dest_dir>/<dbname>_backup_<YYYYMMDD_HHMMSS><extension>"""
    timestamp = (now or datetime.now()).strftime('%Y%m%d_%H%M%S')
    if extension and not extension.startswith('.'):
        extension = '.' + extension
    return Path(dest_dir) / f"{dbname}_backup_{timestamp}{extension}"
