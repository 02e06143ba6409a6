"""Persistence layer for SwingTrack."""
