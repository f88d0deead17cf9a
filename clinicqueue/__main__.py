#!/usr/bin/env python3
"""
Convenience entry point for running clinicqueue directly.

Usage: python -m clinicqueue [command] [options]
"""

from clinicqueue.cli.app import app

if __name__ == "__main__":
    app()
