"""Build and validate a VPM package index from GitHub release metadata."""

__version__ = "0.1.0"
