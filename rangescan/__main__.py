"""
Main entry point for the rangescan command.
"""
import sys

from rangescan.app import main


def main_entry():
    """Runs rangescan and exits with its status code."""
    sys.exit(main())


if __name__ == "__main__":
    main_entry()
