"""Cascade tags from parent work items onto their children."""

__version__ = "0.1.0"
