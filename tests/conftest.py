"""
Shared fixtures for the omti tests.
No test starts a real external command: every subprocess goes through a
mocked CommandRunner or a patched subprocess.run.
"""

import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add the src directory to the path so we can import the package
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from omti.runner import CommandRunner  # noqa: E402


@pytest.fixture
def runner():
    mock_runner = MagicMock(spec=CommandRunner)
    mock_runner.capture.return_value = ''
    return mock_runner


@pytest.fixture
def logger():
    return logging.getLogger('omti_tests')
