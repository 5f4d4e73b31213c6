"""Entry point for ``python -m patchstack``."""

from patchstack.cli import app

if __name__ == "__main__":
    app()
