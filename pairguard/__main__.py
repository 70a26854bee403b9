"""Entry point for running pairguard as a module: python -m pairguard."""

from pairguard.cli.commands import app

if __name__ == "__main__":
    app()
