"""
Entry point for running the server as a module.

Usage:
    python -m offersign.server
    python -m offersign.server --port 8000 --record-store memory
"""

from .cli import main

if __name__ == "__main__":
    main()
