"""
GitHub repository creation and tagging through the gh and git CLIs
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ExternalCommandError, QueryError
from .runner import CommandRunner, PathLike

INITIAL_COMMIT_MESSAGE = "Initial commit"
DEFAULT_BRANCH = "main"
REMOTE_NAME = "origin"

# gh prints one of these when it is not logged in, as opposed to a missing repo
AUTH_FAILURE_MARKERS = ('gh auth login', 'authentication', 'HTTP 401', 'Bad credentials')


@dataclass
class CreateResult:
    created: bool
    pushed: bool


class RepositoryManager:
    """Repository operations for one GitHub repository"""

    def __init__(self, runner: CommandRunner, logger: Optional[logging.Logger] = None):
        self.runner = runner
        self.logger = logger or logging.getLogger(__name__)

    def repo_exists(self, repo_name: str) -> bool:
        """Check whether repo_name exists on GitHub

        A non-zero exit of `gh repo view` is taken to mean the repository
        does not exist, unless gh reports it is not authenticated.
        """
        try:
            self.runner.capture(['gh', 'repo', 'view', repo_name],
                                step="check repository existence")
        except ExternalCommandError as err:
            if err.returncode is None:
                raise
            if any(marker in err.stderr for marker in AUTH_FAILURE_MARKERS):
                raise
            self.logger.debug(f"gh repo view exited with {err.returncode}, treating as missing")
            return False
        return True

    def repo_is_empty(self, repo_name: str) -> bool:
        """True when the repository has no default branch, i.e. no commits yet"""
        try:
            output = self.runner.capture(
                ['gh', 'repo', 'view', repo_name, '--json', 'defaultBranchRef'],
                step="retrieve repository info",
            )
        except ExternalCommandError as err:
            raise QueryError(f"failed to retrieve repository info: {err}") from err

        try:
            info = json.loads(output)
        except json.JSONDecodeError as err:
            raise QueryError(f"failed to parse JSON output: {err}") from err
        if not isinstance(info, dict):
            raise QueryError(f"unexpected repository info: {output.strip()}")

        branch_ref = info.get('defaultBranchRef') or {}
        return not branch_ref.get('name')

    def create_repo(self, repo_name: str):
        """Create a public repository from the current working directory"""
        self.runner.run(
            ['gh', 'repo', 'create', repo_name, '--public', '--source=.', f'--remote={REMOTE_NAME}'],
            step="create GitHub repository",
        )

    def push_folder(self, folder_path: PathLike):
        """Commit everything in folder_path and push it as the first commit"""
        steps = [
            ("initialize repository", ['git', 'init']),
            ("stage files", ['git', 'add', '.']),
            ("commit files", ['git', 'commit', '-m', INITIAL_COMMIT_MESSAGE]),
            ("rename branch", ['git', 'branch', '-M', DEFAULT_BRANCH]),
            ("push to remote", ['git', 'push', '-u', REMOTE_NAME, DEFAULT_BRANCH]),
        ]
        for step, command in steps:
            self.runner.run(command, step=step, cwd=folder_path)

    def create_and_push(self, repo_name: str, folder_path: PathLike) -> CreateResult:
        """Create repo_name if missing and push folder_path if it has no commits"""
        folder = Path(folder_path)
        if not folder.is_dir():
            raise ExternalCommandError("change directory", ['cd', str(folder)],
                                       stderr=f"{folder} is not a directory")

        created = False
        if self.repo_exists(repo_name):
            self.logger.info(f"✅ Repository {repo_name} already exists, skipping creation")
        else:
            self.logger.info(f"Creating new GitHub repository: {repo_name}")
            self.create_repo(repo_name)
            self.logger.info(f"✅ Repository {repo_name} created successfully")
            created = True

        pushed = False
        if self.repo_is_empty(repo_name):
            self.logger.info(f"Pushing {folder} to GitHub")
            self.push_folder(folder)
            self.logger.info("✅ Folder pushed successfully")
            pushed = True
        else:
            self.logger.info(f"✅ Repository {repo_name} already has commits, skipping push")

        return CreateResult(created=created, pushed=pushed)

    def tag_exists(self, tag_name: str, folder_path: PathLike) -> bool:
        try:
            output = self.runner.capture(['git', 'tag', '--list', tag_name],
                                         step="list tags", cwd=folder_path)
        except ExternalCommandError as err:
            raise QueryError(f"failed to list tags: {err}") from err
        return output.strip() == tag_name

    def create_tag(self, tag_name: str, branch_name: str, folder_path: PathLike):
        """Tag the latest commit of origin/<branch_name> and push the tag

        A tag created locally is left in place when the push fails.
        """
        self.runner.run(['git', 'fetch', REMOTE_NAME, branch_name],
                        step=f"fetch latest changes from branch {branch_name}", cwd=folder_path)
        self.runner.run(['git', 'tag', tag_name, f'{REMOTE_NAME}/{branch_name}'],
                        step="create tag", cwd=folder_path)
        self.runner.run(['git', 'push', REMOTE_NAME, tag_name],
                        step="push tag to remote", cwd=folder_path)

    def tag_branch(self, tag_name: str, branch_name: str, folder_path: PathLike) -> bool:
        """Create tag_name on branch_name unless it exists; True if created"""
        folder = Path(folder_path)
        if not folder.is_dir():
            raise ExternalCommandError("change directory", ['cd', str(folder)],
                                       stderr=f"{folder} is not a directory")

        if self.tag_exists(tag_name, folder):
            self.logger.info(f"✅ Tag '{tag_name}' already exists, skipping creation")
            return False

        self.create_tag(tag_name, branch_name, folder)
        self.logger.info(f"✅ Tag '{tag_name}' created successfully")
        return True
