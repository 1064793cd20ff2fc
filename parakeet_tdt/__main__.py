"""Allow running as `python -m parakeet_tdt`."""

from .cli import cli

if __name__ == "__main__":
    cli()
