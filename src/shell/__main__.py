"""Entry point for running the shell with python -m shell."""

from .cli import app

if __name__ == "__main__":
    app()
