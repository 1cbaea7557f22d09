"""bitwarden-reader command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``bwreader`` script).
"""

from bwreader.cli.main import cli

__all__ = ["cli"]
