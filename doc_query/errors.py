from __future__ import annotations


class DocQueryError(Exception):
    """Base class for errors raised by the query core and reference store."""

    kind = "DocQueryError"

    def __init__(self, message: str, offending: object = None) -> None:
        super().__init__(message)
        self.offending = offending


class InvalidQueryError(DocQueryError):
    """Malformed predicate, operator, stage, projection or page spec."""

    kind = "InvalidQueryError"


class EvaluationError(DocQueryError):
    """Arithmetic or type failure inside an aggregation expression."""

    kind = "EvaluationError"


class UnknownIndexError(DocQueryError):
    """Explicit reference to an index that is not declared."""

    kind = "UnknownIndexError"


class DuplicateKeyError(DocQueryError):
    """A document with the same _id already exists in the store."""

    kind = "DuplicateKeyError"


class DataFileError(DocQueryError):
    """The JSON file behind a file-backed store cannot be read as a collection."""

    kind = "DataFileError"
