"""
Entry point for running meshgate as a module: python -m meshgate
"""

from meshgate.cli.commands import app

if __name__ == "__main__":
    app()
