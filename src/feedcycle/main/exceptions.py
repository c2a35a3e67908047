from uuid import UUID


class FeedCycleException(Exception):
    pass


class NotReadyException(FeedCycleException):
    pass


class DirectoryUnavailableException(FeedCycleException):
    """The directory service could not be read for this pass."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StoreUnavailableException(FeedCycleException):
    """A Feed Store operation failed at the storage layer."""


class DuplicateUrlException(FeedCycleException):
    def __init__(self, url: str):
        super().__init__(f"A feed with url {url} already exists")
        self.url = url


class FeedNotFoundException(FeedCycleException):
    def __init__(self, feed_id: UUID):
        super().__init__(f"Feed {feed_id} not found")
        self.feed_id = feed_id
