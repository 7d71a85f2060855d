class StorageError(RuntimeError):
    """A read or write against the memory store failed."""
