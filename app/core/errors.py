"""
Error taxonomy for the catalog pipeline.

Only PlantNotFound ever reaches an HTTP caller. Everything else is recovered
where it is raised: source and translation failures degrade to "no
contribution", batch failures fall back to per-record retries, and records
that still fail are captured as MalformedRecord for inspection.
"""
from typing import Any


class PlantNotFound(Exception):
    """Raised when a lookup key matches no stored plant."""

    def __init__(self, key: Any):
        super().__init__(f"No plant matches {key!r}")
        self.key = key


class SourceUnavailable(Exception):
    """Raised inside a source client when its provider cannot answer."""

    def __init__(self, source: str, detail: str):
        super().__init__(f"{source}: {detail}")
        self.source = source


class TransactionFailure(Exception):
    """Raised when a batch transaction has to be rolled back."""

    def __init__(self, batch_start: int, size: int, cause: BaseException):
        super().__init__(f"batch at offset {batch_start} ({size} records) failed: {cause}")
        self.batch_start = batch_start
        self.size = size
        self.__cause__ = cause


class MalformedRecord(Exception):
    """A record that could not be persisted even on its own."""

    def __init__(self, index: int, content: dict, cause: BaseException):
        super().__init__(f"record {index} could not be persisted: {cause}")
        self.index = index
        self.content = content
        self.__cause__ = cause


class TranslationFailure(Exception):
    """Raised by a translation provider on a non-usable response."""
