#!/usr/bin/env python3
"""
Main entry point for the guugle crawler and search commands.
"""

import sys

from guugle.cli import main


if __name__ == '__main__':
    sys.exit(main())
