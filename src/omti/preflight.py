"""
Environment preflight checks

Makes sure the external tools a command needs are callable, installing the
missing ones with the platform's package manager where that is possible, and
that an SSH keypair exists and is registered with GitHub.
"""

import enum
import logging
import platform
import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .errors import EnvironmentCheckError, ExternalCommandError, UnsupportedPlatformError
from .runner import CommandRunner


class Platform(enum.Enum):
    MACOS = 'macos'
    DEBIAN = 'debian'
    UNSUPPORTED = 'unsupported'


# tool -> {platform: package name}
PACKAGES: Dict[str, Dict[Platform, str]] = {
    'gh': {Platform.MACOS: 'gh', Platform.DEBIAN: 'gh'},
    'git': {Platform.MACOS: 'git', Platform.DEBIAN: 'git'},
    'pg_dump': {Platform.MACOS: 'postgresql', Platform.DEBIAN: 'postgresql-client'},
}

# platform -> function building the install commands for a package
INSTALL_STRATEGIES: Dict[Platform, Callable[[str], List[List[str]]]] = {
    Platform.MACOS: lambda package: [
        ['brew', 'install', package],
    ],
    Platform.DEBIAN: lambda package: [
        ['sudo', 'apt-get', 'update'],
        ['sudo', 'apt-get', 'install', '-y', package],
    ],
}


def detect_platform() -> Platform:
    system = platform.system()
    if system == 'Darwin':
        return Platform.MACOS
    if system == 'Linux' and shutil.which('apt-get'):
        return Platform.DEBIAN
    return Platform.UNSUPPORTED


def install_commands(tool: str, target: Platform) -> List[List[str]]:
    """Commands installing tool on target, in the order they must run"""
    strategy = INSTALL_STRATEGIES.get(target)
    if strategy is None:
        raise UnsupportedPlatformError(platform.system() or target.value)
    try:
        package = PACKAGES[tool][target]
    except KeyError:
        raise EnvironmentCheckError(f"no known package provides '{tool}'") from None
    return strategy(package)


class Preflight:
    """Verify and prepare the local environment for omti commands"""

    def __init__(self, runner: CommandRunner, ssh_key_path: str = '~/.ssh/id_rsa',
                 ssh_key_title: str = 'omti-cli-key',
                 target: Optional[Platform] = None,
                 logger: Optional[logging.Logger] = None):
        self.runner = runner
        self.ssh_key_path = Path(ssh_key_path).expanduser()
        self.ssh_key_title = ssh_key_title
        self.target = target
        self.logger = logger or logging.getLogger(__name__)

    @property
    def public_key_path(self) -> Path:
        return self.ssh_key_path.with_name(self.ssh_key_path.name + '.pub')

    def check_tool(self, tool: str) -> bool:
        """Check that `tool --version` can be run

        Tools without a --version flag (ssh, lsof) exit non-zero but still
        count as callable; only a failure to start or a timeout does not.
        """
        try:
            output = self.runner.capture([tool, '--version'], step=f"check {tool}", timeout=5)
        except ExternalCommandError as err:
            return err.returncode is not None

        output = output.strip()
        if output:
            self.logger.debug(f"{tool} version: {output.splitlines()[0]}")
        return True

    def install_tool(self, tool: str):
        target = self.target or detect_platform()
        self.logger.info(f"Installing {tool} ({target.value})...")
        for command in install_commands(tool, target):
            self.runner.run(command, step=f"install {tool}")

    def ensure_tool(self, tool: str):
        """Make sure tool is callable, installing it when missing"""
        if self.check_tool(tool):
            self.logger.info(f"✅ {tool} is already installed")
            return

        try:
            self.install_tool(tool)
        except ExternalCommandError as err:
            raise EnvironmentCheckError(f"failed to install {tool}: {err}") from err

        if not self.check_tool(tool):
            raise EnvironmentCheckError(f"{tool} is still not callable after installation")
        self.logger.info(f"✅ {tool} installed")

    def require_tool(self, tool: str):
        """Make sure tool is callable, never installing it"""
        if not self.check_tool(tool):
            raise EnvironmentCheckError(f"required command '{tool}' not found, please install it")

    def ensure_ssh_key(self):
        """Generate an SSH keypair and register it with GitHub if absent"""
        public_key = self.public_key_path
        if public_key.exists():
            self.logger.debug(f"Using SSH key {public_key}")
            return

        self.logger.info("Generating SSH key...")
        ssh_dir = self.ssh_key_path.parent
        ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        try:
            self.runner.run(
                ['ssh-keygen', '-t', 'rsa', '-b', '4096', '-f', str(self.ssh_key_path), '-N', ''],
                step="generate SSH key",
            )
        except ExternalCommandError as err:
            raise EnvironmentCheckError(f"SSH key setup failed: {err}") from err
        self.logger.info("✅ SSH key generated")

        if not public_key.exists():
            raise EnvironmentCheckError(f"SSH public key not found at {public_key}")

        self.logger.info("Adding SSH key to GitHub...")
        try:
            self.runner.run(
                ['gh', 'ssh-key', 'add', str(public_key), '--title', self.ssh_key_title],
                step="add SSH key to GitHub",
            )
        except ExternalCommandError as err:
            raise EnvironmentCheckError(f"failed to add SSH key to GitHub: {err}") from err
        self.logger.info("✅ SSH key added to GitHub")

    def check_repo_environment(self):
        self.logger.info("🔍 Starting environment checks")
        self.ensure_tool('gh')
        self.ensure_tool('git')
        self.ensure_ssh_key()
        self.logger.info("✅ All environment checks passed")

    def check_backup_environment(self, remote: bool = False):
        self.logger.info("🔍 Starting environment checks")
        self.ensure_tool('pg_dump')
        if remote:
            self.require_tool('ssh')
            # lsof is only needed to tear the tunnel down, which already just warns
            if not self.check_tool('lsof'):
                self.logger.warning("lsof not found; the SSH tunnel will have to be "
                                    "stopped by hand after the backup")
        self.logger.info("✅ All environment checks passed")
