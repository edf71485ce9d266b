"""
PostgreSQL backups with pg_dump, directly or through an SSH tunnel
"""

import logging
import os
import socket
import time
from pathlib import Path
from typing import Optional, Union

from .config import DEFAULT_FORWARD_PORT
from .connection import (DEFAULT_DUMP_EXTENSION, ConnectionDescriptor, RemoteDescriptor,
                         backup_artifact_path)
from .errors import ExternalCommandError, TunnelError, TunnelNotReadyError
from .runner import CommandRunner


def port_accepts_connections(port: int, host: str = '127.0.0.1', timeout: float = 0.5) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class SSHTunnel:
    """SSH local port forward held for the duration of a `with` block

    ssh is started with -f so it backgrounds itself once the forward is set
    up; the backgrounded process is found again through the port it holds
    when the tunnel is closed.
    """

    def __init__(self, runner: CommandRunner, remote: RemoteDescriptor, local_port: int,
                 db_host: str = 'localhost', ssh_key: Optional[str] = None,
                 ready_timeout: float = 10.0, poll_interval: float = 0.2,
                 logger: Optional[logging.Logger] = None):
        self.runner = runner
        self.remote = remote
        self.local_port = local_port
        self.db_host = db_host
        self.ssh_key = ssh_key and Path(ssh_key).expanduser()
        self.ready_timeout = ready_timeout
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)
        self.teardown_attempts = 0

    def command(self):
        ssh_cmd = [
            'ssh',
            '-f',  # background after authentication
            '-N',  # don't execute a remote command
            '-o', 'ExitOnForwardFailure=yes',
            '-L', f'{self.local_port}:{self.db_host}:{self.remote.port}',
        ]
        if self.ssh_key:
            if self.ssh_key.exists():
                ssh_cmd.extend(['-i', str(self.ssh_key)])
            else:
                self.logger.warning(f"SSH key not found: {self.ssh_key}, using ssh defaults")
        ssh_cmd.append(self.remote.destination)
        return ssh_cmd

    def check_port_free(self):
        if port_accepts_connections(self.local_port):
            raise TunnelError(f"forwarding port {self.local_port} is already in use")

    def start(self):
        self.logger.info(f"Starting SSH tunnel to {self.remote.destination}")
        self.logger.info(f"Forwarding localhost:{self.local_port} -> "
                         f"{self.db_host}:{self.remote.port} on {self.remote.host}")
        try:
            self.runner.run(self.command(), step="start SSH tunnel")
        except ExternalCommandError as err:
            raise TunnelError(f"failed to start SSH tunnel: {err}") from err

    def wait_until_ready(self):
        """Poll the forwarding port until it accepts connections"""
        deadline = time.monotonic() + self.ready_timeout
        while not port_accepts_connections(self.local_port):
            if time.monotonic() >= deadline:
                raise TunnelNotReadyError(self.local_port, self.ready_timeout)
            time.sleep(self.poll_interval)
        self.logger.info(f"SSH tunnel established on localhost:{self.local_port}")

    def stop(self):
        """Terminate whatever listens on the forwarding port; never raises"""
        self.teardown_attempts += 1
        port = self.local_port
        try:
            # only the listener, not clients connected to some other host's port
            output = self.runner.capture(['lsof', '-t', f'-iTCP:{port}', '-sTCP:LISTEN'],
                                         step=f"find process on port {port}")
        except ExternalCommandError as err:
            self.logger.warning(f"❌ Failed to kill SSH tunnel process on port {port}: {err}")
            return

        pids = [line.strip() for line in output.splitlines() if line.strip()]
        if not pids:
            self.logger.warning(f"❌ Failed to kill SSH tunnel process on port {port}: "
                                f"no process found on port {port}")
            return

        try:
            self.runner.run(['kill'] + pids, step=f"kill process on port {port}")
        except ExternalCommandError as err:
            self.logger.warning(f"❌ Failed to kill SSH tunnel process on port {port}: {err}")
            return
        self.logger.info(f"✅ SSH tunnel process on port {port} terminated successfully")

    def __enter__(self) -> 'SSHTunnel':
        self.check_port_free()
        try:
            self.start()
            self.wait_until_ready()
        except BaseException:
            self.stop()
            raise
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False


class PgDumpTool:
    """Run pg_dump in custom archive format"""

    def __init__(self, runner: CommandRunner, logger: Optional[logging.Logger] = None):
        self.runner = runner
        self.logger = logger or logging.getLogger(__name__)

    def dump(self, conn: ConnectionDescriptor, output_file: Path,
             host: Optional[str] = None, port: Optional[str] = None) -> Path:
        """Dump conn's database into output_file

        host/port override the descriptor's, e.g. to go through a tunnel.
        The password is passed as PGPASSWORD, never on the command line.
        """
        host = host or conn.host
        port = str(port or conn.port)
        self.logger.info(f"Dumping database '{conn.dbname}' from {host}:{port}")

        pg_dump_cmd = [
            'pg_dump',
            '-h', host,
            '-p', port,
            '-U', conn.user,
            '-d', conn.dbname,
            '-F', 'c',
            '-f', str(output_file),
        ]
        env = os.environ.copy()
        env['PGPASSWORD'] = conn.password

        self.runner.capture(pg_dump_cmd, step="execute pg_dump", env=env)

        if output_file.exists():
            file_size = output_file.stat().st_size
            self.logger.info(f"Database dump completed. File size: {file_size:,} bytes")
            if file_size == 0:
                self.logger.warning("Dump file is empty!")
        return output_file


class BackupTool:
    """Back up a database locally or through an SSH tunnel"""

    def __init__(self, runner: CommandRunner, forward_port: int = DEFAULT_FORWARD_PORT,
                 dump_extension: str = DEFAULT_DUMP_EXTENSION,
                 ssh_key: Optional[str] = None, tunnel_timeout: float = 10.0,
                 logger: Optional[logging.Logger] = None):
        self.runner = runner
        self.forward_port = forward_port
        self.dump_extension = dump_extension
        self.ssh_key = ssh_key
        self.tunnel_timeout = tunnel_timeout
        self.logger = logger or logging.getLogger(__name__)
        self.pg_dump = PgDumpTool(runner, logger=self.logger)

    def _prepare_destination(self, conn: ConnectionDescriptor,
                             dest_dir: Union[str, Path]) -> Path:
        dest = Path(dest_dir).expanduser()
        dest.mkdir(parents=True, exist_ok=True)
        return backup_artifact_path(dest, conn.dbname, self.dump_extension)

    def tunnel(self, remote: RemoteDescriptor, db_host: str = 'localhost') -> SSHTunnel:
        return SSHTunnel(self.runner, remote, self.forward_port, db_host=db_host,
                         ssh_key=self.ssh_key, ready_timeout=self.tunnel_timeout,
                         logger=self.logger)

    def backup_local(self, conn: ConnectionDescriptor, dest_dir: Union[str, Path]) -> Path:
        backup_file = self._prepare_destination(conn, dest_dir)
        self.pg_dump.dump(conn, backup_file)
        self.logger.info(f"✅ Backup saved to {backup_file}")
        return backup_file

    def backup_remote(self, conn: ConnectionDescriptor, dest_dir: Union[str, Path],
                      remote: RemoteDescriptor) -> Path:
        """Dump through a tunnel from localhost:<forward_port> to the remote db port

        The database host in conn is resolved on the remote side of the tunnel.
        """
        backup_file = self._prepare_destination(conn, dest_dir)
        with self.tunnel(remote, db_host=conn.host):
            self.pg_dump.dump(conn, backup_file, host='localhost', port=str(self.forward_port))
        self.logger.info(f"✅ Backup saved to {backup_file}")
        return backup_file

    def backup(self, conn: ConnectionDescriptor, dest_dir: Union[str, Path],
               remote: Optional[RemoteDescriptor] = None) -> Path:
        if remote is None:
            return self.backup_local(conn, dest_dir)
        return self.backup_remote(conn, dest_dir, remote)
