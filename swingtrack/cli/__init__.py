"""CLI commands for SwingTrack.

This package provides the command-line interface for recording trades
and inspecting positions and realized P&L.
"""

from swingtrack.cli.main import cli, main

__all__ = ["cli", "main"]
