"""
Main entry point for running bizdocs as a module.

Usage:
    python -m bizdocs <command> [options]
"""
import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
