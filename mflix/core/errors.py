# Error types shared by the data access and service layers
# mflix/core/errors.py

import asyncio

from pymongo.errors import PyMongoError

# Failures coming back from a MongoDB round trip. Services log and re-raise these unchanged.
StoreError = PyMongoError

# Raised into an awaiting coroutine when its task is cancelled. Never caught by the services.
CancellationError = asyncio.CancelledError


class ConfigurationError(ValueError):
    """Raised when a pipeline stage is built from invalid parameters (before any I/O)."""
    pass


class MovieNotFoundError(Exception):
    """Custom exception when a movie is not found."""
    pass
