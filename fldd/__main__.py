"""
fldd Module Entry Point
========================

Allows running the CLI via: python -m fldd
"""

from fldd.cli import main

if __name__ == "__main__":
    main()
