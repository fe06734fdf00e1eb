"""
Entry point for running simcheck as a module.

Usage:
    python -m simcheck
    python -m simcheck 1500 --config simcheck.yaml
"""

from simcheck.app.cli import main

if __name__ == "__main__":
    main()
