"""
CLI entry point for Motion Matching.

Enables: python -m motion_matching
"""

import sys

from motion_matching.cli import main

if __name__ == "__main__":
    sys.exit(main())
