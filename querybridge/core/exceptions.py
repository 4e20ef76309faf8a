from typing import Any

__all__ = [
    "BaseError",
    "BadRequestError",
    "ParameterError",
    "QueryError",
]


class BaseError(Exception):
    status_code: int


class BadRequestError(BaseError):
    status_code = 400


class ParameterError(BadRequestError):
    """Malformed or insufficient query descriptor.

    Raised while building request parameters, before
    anything is sent to the search engine.
    """


class QueryError(BaseError):
    """Search engine or transport failure.

    Attributes:
        status_code:
            Status reported by the engine, 500 when the
            transport did not report one.
        query_tag:
            Tag of the bridge operation that failed.
        params:
            Request parameters that were sent (or about to be sent).
        details:
            Decoded error details: message, reason, root cause,
            exception class name, original message.
    """

    status_code = 500

    query_tag: str | None
    params: dict[str, Any]
    details: dict[str, Any]

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        query_tag: str | None = None,
        params: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        self.query_tag = query_tag
        self.params = params or {}
        self.details = details or {}

    @property
    def exception(self) -> str | None:
        return self.details.get("exception")
