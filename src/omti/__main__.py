#!/usr/bin/env python3
"""
Entry point for the omti CLI command.
This allows the package to be run as: python -m omti
"""

import sys

from .cli import main

if __name__ == '__main__':
    sys.exit(main())
