class StoreError(RuntimeError):
    """Raised when the message store fails a read, write or live query."""
    pass


class ProfileLookupError(RuntimeError):
    """Raised when a participant's display identity cannot be fetched."""
    pass
