#!/usr/bin/env python3
"""
PageFeed - RSS Feeds From Web Pages
===================================

Main application entry point.

Usage:
    python main.py --help             # Show all commands
    python main.py check-config       # Validate the feeds file
    python main.py run                # Update every configured feed
"""

import sys
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from pagefeed.cli import main

if __name__ == "__main__":
    main()
