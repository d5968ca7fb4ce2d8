#!/usr/bin/env python3
"""Main entry point for journal_mirror module.
This allows running: python -m journal_mirror
"""

from .cli import main

if __name__ == "__main__":
    main()
