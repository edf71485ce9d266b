from unittest.mock import call

import pytest

from omti.errors import ExternalCommandError, QueryError
from omti.repo import RepositoryManager

NOT_FOUND = ExternalCommandError(
    "check repository existence", ['gh', 'repo', 'view', 'demo'], 1,
    "GraphQL: Could not resolve to a Repository with the name 'me/demo'. (repository)")


def gh_responses(exists, default_branch):
    """capture() side effect for the `gh repo view` existence and metadata calls"""
    metadata = ('{"defaultBranchRef":{"name":"%s"}}' % default_branch
                if default_branch else '{"defaultBranchRef":null}')

    def capture(args, step, cwd=None, env=None):
        if '--json' in args:
            return metadata
        if not exists:
            raise NOT_FOUND
        return 'me/demo\n'
    return capture


def test_missing_repo_is_created_then_pushed(runner, tmp_path):
    runner.capture.side_effect = gh_responses(exists=False, default_branch=None)

    result = RepositoryManager(runner).create_and_push('demo', tmp_path)

    assert result.created and result.pushed
    assert runner.run.call_args_list == [
        call(['gh', 'repo', 'create', 'demo', '--public', '--source=.', '--remote=origin'],
             step="create GitHub repository"),
        call(['git', 'init'], step="initialize repository", cwd=tmp_path),
        call(['git', 'add', '.'], step="stage files", cwd=tmp_path),
        call(['git', 'commit', '-m', 'Initial commit'], step="commit files", cwd=tmp_path),
        call(['git', 'branch', '-M', 'main'], step="rename branch", cwd=tmp_path),
        call(['git', 'push', '-u', 'origin', 'main'], step="push to remote", cwd=tmp_path),
    ]


def test_existing_repo_with_commits_is_left_alone(runner, tmp_path):
    runner.capture.side_effect = gh_responses(exists=True, default_branch='main')

    result = RepositoryManager(runner).create_and_push('demo', tmp_path)

    assert not result.created and not result.pushed
    runner.run.assert_not_called()


def test_existing_empty_repo_is_pushed_not_created(runner, tmp_path):
    runner.capture.side_effect = gh_responses(exists=True, default_branch=None)

    result = RepositoryManager(runner).create_and_push('demo', tmp_path)

    assert not result.created and result.pushed
    assert runner.run.call_args_list[0] == call(['git', 'init'], step="initialize repository",
                                                cwd=tmp_path)
    assert len(runner.run.call_args_list) == 5


def test_push_aborts_at_first_failing_step(runner, tmp_path):
    failure = ExternalCommandError("commit files", ['git', 'commit'], 1)
    runner.run.side_effect = [None, None, failure]

    with pytest.raises(ExternalCommandError) as excinfo:
        RepositoryManager(runner).push_folder(tmp_path)

    assert excinfo.value.step == "commit files"
    assert runner.run.call_count == 3


def test_repo_exists_auth_failure_propagates(runner):
    runner.capture.side_effect = ExternalCommandError(
        "check repository existence", ['gh', 'repo', 'view', 'demo'], 4,
        "To get started with GitHub CLI, please run:  gh auth login")

    with pytest.raises(ExternalCommandError):
        RepositoryManager(runner).repo_exists('demo')


def test_repo_exists_gh_not_startable_propagates(runner):
    runner.capture.side_effect = ExternalCommandError(
        "check repository existence", ['gh', 'repo', 'view', 'demo'])

    with pytest.raises(ExternalCommandError):
        RepositoryManager(runner).repo_exists('demo')


def test_repo_exists_non_zero_means_missing(runner):
    runner.capture.side_effect = NOT_FOUND
    assert RepositoryManager(runner).repo_exists('demo') is False


@pytest.mark.parametrize("output, expected", [
    ('{"defaultBranchRef":{"name":"main"}}', False),
    ('{"defaultBranchRef":{"name":""}}', True),
    ('{"defaultBranchRef":null}', True),
    ('{}', True),
])
def test_repo_is_empty(runner, output, expected):
    runner.capture.return_value = output
    assert RepositoryManager(runner).repo_is_empty('demo') is expected
    runner.capture.assert_called_once_with(
        ['gh', 'repo', 'view', 'demo', '--json', 'defaultBranchRef'],
        step="retrieve repository info")


@pytest.mark.parametrize("output", ['not json', '[]'])
def test_repo_is_empty_unparseable(runner, output):
    runner.capture.return_value = output
    with pytest.raises(QueryError):
        RepositoryManager(runner).repo_is_empty('demo')


def test_repo_is_empty_query_failure(runner):
    runner.capture.side_effect = ExternalCommandError("retrieve repository info", ['gh'], 1)
    with pytest.raises(QueryError, match="failed to retrieve repository info"):
        RepositoryManager(runner).repo_is_empty('demo')


def test_create_and_push_missing_folder(runner, tmp_path):
    with pytest.raises(ExternalCommandError, match="not a directory"):
        RepositoryManager(runner).create_and_push('demo', tmp_path / 'missing')
    runner.capture.assert_not_called()
    runner.run.assert_not_called()


def test_existing_tag_is_skipped(runner, tmp_path):
    runner.capture.return_value = 'v1.0.0\n'

    created = RepositoryManager(runner).tag_branch('v1.0.0', 'main', tmp_path)

    assert created is False
    runner.capture.assert_called_once_with(['git', 'tag', '--list', 'v1.0.0'],
                                           step="list tags", cwd=tmp_path)
    runner.run.assert_not_called()


def test_missing_tag_is_fetched_tagged_and_pushed(runner, tmp_path):
    runner.capture.return_value = ''

    created = RepositoryManager(runner).tag_branch('v1.0.0', 'release', tmp_path)

    assert created is True
    assert [c.args[0] for c in runner.run.call_args_list] == [
        ['git', 'fetch', 'origin', 'release'],
        ['git', 'tag', 'v1.0.0', 'origin/release'],
        ['git', 'push', 'origin', 'v1.0.0'],
    ]
    assert all(c.kwargs['cwd'] == tmp_path for c in runner.run.call_args_list)


def test_tag_match_is_exact(runner, tmp_path):
    # `git tag --list` takes a pattern, so only an exact line counts
    runner.capture.return_value = 'v1.0.0-rc1\n'
    assert RepositoryManager(runner).tag_exists('v1.0.0', tmp_path) is False


def test_tag_push_failure_leaves_local_tag(runner, tmp_path):
    runner.run.side_effect = [None, None,
                              ExternalCommandError("push tag to remote", ['git', 'push'], 1)]

    with pytest.raises(ExternalCommandError, match="push tag to remote"):
        RepositoryManager(runner).tag_branch('v1.0.0', 'main', tmp_path)

    # no `git tag -d` cleanup after the failed push
    assert runner.run.call_count == 3


def test_tag_list_failure(runner, tmp_path):
    runner.capture.side_effect = ExternalCommandError("list tags", ['git', 'tag'], 128,
                                                      "fatal: not a git repository")
    with pytest.raises(QueryError, match="failed to list tags"):
        RepositoryManager(runner).tag_branch('v1.0.0', 'main', tmp_path)
