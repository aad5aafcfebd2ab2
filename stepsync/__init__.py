"""stepsync — Google Fit to 1self incremental step sync."""

__version__ = "0.1.0"
