"""Failures raised by session store implementations."""


class StoreError(Exception):
    """Base class for session store failures."""


class NotFoundError(StoreError):
    """The requested session or player does not exist."""


class ConflictError(StoreError):
    """A uniqueness constraint (the join code) was violated."""


class WriteFailedError(StoreError):
    """A mutation could not be committed."""


class StaleWriteError(WriteFailedError):
    """A player write carried a round that no longer matches the stored row."""


class SessionClosedError(StoreError):
    """The session has left waiting status and no longer accepts players."""
