"""SwingTrack - swing-trading portfolio tracker with FIFO cost basis."""

__version__ = "0.1.0"
