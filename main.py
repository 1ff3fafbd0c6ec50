#!/usr/bin/env python3
"""
MediaScribe Entry Point Script

This script initializes the CLI handler and runs the transcription process.
"""

import sys
from mediascribe.cli import CLIHandler

if __name__ == "__main__":
    if sys.version_info < (3, 8):
        sys.stderr.write("MediaScribe requires Python 3.8 or later.\n")
        sys.exit(1)

    cli = CLIHandler()
    sys.exit(cli.run())
