"""
Top-level package for the agent model service.

The service exposes a FastAPI app (see `main.py`) with:

- GET /{address}: compiled interface description of the AI service
  behind an `Agent` contract address
"""

__version__ = "0.1.0"
