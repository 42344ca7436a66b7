"""
Entry point for running MUCM as a module.

Usage:
    python -m mucm --help
    python -m mucm init --name "Shop"
    python -m mucm create "Login" --category Security
"""
from .cli import app


if __name__ == "__main__":
    app()
