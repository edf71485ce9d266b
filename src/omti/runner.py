"""
Thin wrapper around subprocess used by every omti component.

All external programs (gh, git, ssh, pg_dump, lsof, package managers) are
started through a CommandRunner so that command logging, timeouts and error
wrapping live in one place and tests can substitute a mock runner.
"""

import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import ExternalCommandError

PathLike = Union[str, Path]


class CommandRunner:
    """Run external commands, raising ExternalCommandError on failure"""

    def __init__(self, logger: Optional[logging.Logger] = None,
                 timeout: Optional[float] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.timeout = timeout

    def _execute(self, args: List[str], step: str, capture: bool,
                 cwd: Optional[PathLike], env: Optional[Dict[str, str]],
                 timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        timeout = timeout if timeout is not None else self.timeout
        self.logger.debug(f"Executing command: {' '.join(args)}")
        if cwd:
            self.logger.debug(f"  in directory: {cwd}")

        try:
            return subprocess.run(
                args,
                cwd=str(cwd) if cwd else None,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE if capture else None,
                stderr=subprocess.PIPE if capture else None,
                timeout=timeout,
            )
        except FileNotFoundError as err:
            raise ExternalCommandError(step, args, stderr=str(err)) from err
        except subprocess.TimeoutExpired as err:
            raise ExternalCommandError(
                step, args, stderr=f"timed out after {timeout}s"
            ) from err
        except OSError as err:
            raise ExternalCommandError(step, args, stderr=str(err)) from err

    def run(self, args: List[str], step: str, cwd: Optional[PathLike] = None,
            env: Optional[Dict[str, str]] = None) -> None:
        """Run a command with output going straight to the terminal"""
        result = self._execute(args, step, capture=False, cwd=cwd, env=env)
        if result.returncode != 0:
            raise ExternalCommandError(step, args, result.returncode)

    def capture(self, args: List[str], step: str, cwd: Optional[PathLike] = None,
                env: Optional[Dict[str, str]] = None,
                timeout: Optional[float] = None) -> str:
        """Run a command and return its stdout

        Raises ExternalCommandError carrying the exit status and stderr when
        the command exits non-zero. timeout overrides the runner-wide one.
        """
        result = self._execute(args, step, capture=True, cwd=cwd, env=env, timeout=timeout)
        stdout = result.stdout.decode('utf-8', errors='ignore')
        stderr = result.stderr.decode('utf-8', errors='ignore')
        if stderr.strip():
            self.logger.debug(f"stderr: {stderr.strip()}")
        if result.returncode != 0:
            raise ExternalCommandError(step, args, result.returncode, stderr)
        return stdout
