"""
API package for the pacing engine.

Router modules:
- pacing: Bulk delivery, line item pacing, portfolio snapshot and
  campaign expected-spend endpoints
"""

from pacing_engine.api.pacing import router as pacing_router

__all__ = [
    "pacing_router",
]
