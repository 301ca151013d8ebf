#!/usr/bin/env python3
"""Main entry point for the Faultline debate engine."""

import sys

from faultline.engine.cli import main, setup_logging

__all__ = ["main", "setup_logging"]

if __name__ == "__main__":
    sys.exit(main())
