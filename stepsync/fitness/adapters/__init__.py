"""Concrete collaborators for the sync engine.

Available adapters:
    GoogleFitAdapter — Google Fit REST API step source (OAuth2)
    OneselfSink      — 1self streams API event sink
"""

from stepsync.fitness.adapters.google_fit import GoogleFitAdapter
from stepsync.fitness.adapters.oneself import OneselfSink

__all__ = [
    "GoogleFitAdapter",
    "OneselfSink",
]
