class PersistenceError(Exception):
    """
    Raised when the store fails while a batch is being applied.
    The batch's transaction has been rolled back and the stream offset is unchanged.
    """

    def __init__(self, message: str, *, stream_name: str | None = None, target_offset: int | None = None):
        super().__init__(message)
        self.stream_name = stream_name
        self.target_offset = target_offset
