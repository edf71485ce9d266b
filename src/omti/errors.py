"""
Exception types raised by omti.

Every error carries enough context (which step failed) for the CLI to print
a single human-readable line before exiting with a non-zero status.
"""

from typing import List, Optional


class OmtiError(Exception):
    """Base class for all omti errors"""


class ParseError(OmtiError):
    """Malformed connection or remote descriptor string"""


class ConfigError(OmtiError):
    """Unreadable or invalid configuration file"""


class EnvironmentCheckError(OmtiError):
    """A required tool or key is missing and could not be set up"""


class UnsupportedPlatformError(EnvironmentCheckError):
    """No install strategy exists for the detected platform"""

    def __init__(self, platform_name: str):
        super().__init__(f"unsupported OS: {platform_name}")
        self.platform_name = platform_name


class ExternalCommandError(OmtiError):
    """An external command failed to start, timed out or exited non-zero"""

    def __init__(self, step: str, command: List[str],
                 returncode: Optional[int] = None, stderr: str = ''):
        self.step = step
        self.command = command
        self.returncode = returncode
        self.stderr = stderr or ''

        message = f"{step}: `{' '.join(command)}`"
        if returncode is None:
            message += " could not be run"
        else:
            message += f" exited with status {returncode}"
        if self.stderr.strip():
            message += f"\n{self.stderr.strip()}"
        super().__init__(message)


class QueryError(OmtiError):
    """A follow-up query failed or returned data that could not be parsed"""


class TunnelError(OmtiError):
    """The SSH tunnel could not be opened"""


class TunnelNotReadyError(TunnelError):
    """The tunnel was launched but never accepted connections"""

    def __init__(self, port: int, timeout: float):
        super().__init__(
            f"SSH tunnel on localhost:{port} not accepting connections after {timeout:g}s"
        )
        self.port = port
        self.timeout = timeout
