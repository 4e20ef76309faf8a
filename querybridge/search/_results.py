from __future__ import annotations

import json
from typing import Any

from querybridge.core import DataModel

from ._models import Document

COUNTERS = ("modified", "created", "deleted", "failed")


class QueryMetaData(DataModel):
    """Metadata of a bridge operation.

    Attributes:
        index: Target index.
        query: Query tag of the operation.
        success: Whether the operation succeeded.
        timed_out: Engine timeout flag.
        took: Engine time in milliseconds, -1 when unknown.
        total: Total hits, -1 when unknown.
        max_score: Highest relevance score.
        id: Id of the written or fetched document.
        shards: Shard statistics.
        dsl: Request parameters.
        results: Counters: modified, created, deleted, failed.
        sort: Sort values of the last hit.
        cursor: Pagination cursor.
        error: Decoded error: msg, data, code.
        error_message: Original error message.
        error_bag: Per-document failures.
        extra: Remaining engine metadata.
    """

    index: str = ""
    query: str = ""
    success: bool = False
    timed_out: bool = False
    took: int = -1
    total: int = -1
    max_score: float | None = None
    id: Any = None
    shards: dict[str, Any] = {}
    dsl: dict[str, Any] = {}
    results: dict[str, int] = {}
    sort: list[Any] | None = None
    cursor: dict[str, Any] = {}
    error: dict[str, Any] = {}
    error_message: str = ""
    error_bag: list[Any] = []
    extra: dict[str, Any] = {}

    @staticmethod
    def from_meta(
        meta: dict[str, Any] | QueryMetaData | None,
    ) -> QueryMetaData:
        if isinstance(meta, QueryMetaData):
            return meta.model_copy(deep=True)
        meta = dict(meta or {})
        shards = meta.pop("shards", None)
        raw_shards = meta.pop("_shards", None)
        index = meta.pop("index", None)
        raw_index = meta.pop("_index", None)
        result = QueryMetaData(
            timed_out=bool(meta.pop("timed_out", False)),
            took=_int(meta.pop("took", None), -1),
            total=_int(meta.pop("total", None), -1),
            max_score=meta.pop("max_score", None),
            shards=shards or raw_shards or {},
            sort=meta.pop("sort", None),
            cursor=meta.pop("cursor", None) or {},
            id=meta.pop("_id", None),
            index=index or raw_index or "",
            error_bag=meta.pop("error_bag", None) or [],
        )
        if "deleteCount" in meta:
            meta["deleted"] = meta.pop("deleteCount")
        for key in COUNTERS:
            value = meta.pop(key, None)
            if isinstance(value, int) and not isinstance(value, bool):
                result.results[key] = value
        result.extra = meta
        return result

    @property
    def modified(self) -> int:
        return self.results.get("modified", 0)

    @property
    def created(self) -> int:
        return self.results.get("created", 0)

    @property
    def deleted(self) -> int:
        return self.results.get("deleted", 0)

    @property
    def failed(self) -> int:
        return self.results.get("failed", 0)

    def set_error(
        self,
        message: str,
        code: int | None,
        body: Any = None,
    ) -> None:
        msg, data = decode_error(message, body)
        self.success = False
        self.error = {"msg": msg, "data": data, "code": code}
        self.error_message = message

    def as_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "index": self.index,
            "query": self.query,
            "success": self.success,
            "timed_out": self.timed_out,
            "took": self.took,
            "total": self.total,
        }
        if self.max_score is not None:
            result["max_score"] = self.max_score
        if self.shards:
            result["shards"] = self.shards
        if self.dsl:
            result["dsl"] = self.dsl
        if self.id is not None:
            result["_id"] = self.id
        result.update(self.results)
        if self.error:
            result["error"] = self.error
            result["error_message"] = self.error_message
        if self.error_bag:
            result["error_bag"] = self.error_bag
        if self.sort:
            result["sort"] = self.sort
        if self.cursor:
            result["cursor"] = self.cursor
        if self.extra:
            result["_meta"] = self.extra
        return result


class Results(DataModel):
    """Result envelope of every bridge operation.

    `data` is always present: an empty list, zero or an empty dict
    when nothing matched or the operation failed.
    """

    data: Any = None
    meta: QueryMetaData = QueryMetaData()
    params: dict[str, Any] = {}
    query_tag: str = ""

    @staticmethod
    def create(
        data: Any,
        meta: dict[str, Any] | QueryMetaData | None = None,
        params: dict[str, Any] | None = None,
        query_tag: str = "",
    ) -> Results:
        params = params or {}
        result_meta = QueryMetaData.from_meta(meta)
        result_meta.query = query_tag
        result_meta.success = True
        result_meta.dsl = params
        if params.get("index"):
            result_meta.index = str(params["index"])
        if isinstance(data, Document) and data.id is not None:
            result_meta.id = data.id
        elif isinstance(data, dict) and data.get("_id"):
            result_meta.id = data["_id"]
        return Results(
            data=data, meta=result_meta, params=params, query_tag=query_tag
        )

    def set_error(
        self, error: str, code: int | None, body: Any = None
    ) -> None:
        self.meta.set_error(error, code, body)

    def is_successful(self) -> bool:
        return self.meta.success

    @property
    def error(self) -> dict[str, Any] | None:
        return self.meta.error or None

    @property
    def error_code(self) -> int | None:
        if not self.meta.error:
            return None
        return self.meta.error.get("code")

    def get_meta_data(self) -> QueryMetaData:
        return self.meta

    def get_meta_data_as_dict(self) -> dict[str, Any]:
        return self.meta.as_dict()

    def get_log_formatted_meta_data(self) -> dict[str, Any]:
        return {
            f"logged_{key}": value
            for key, value in self.get_meta_data_as_dict().items()
        }

    @property
    def inserted_id(self) -> Any:
        return self.meta.id

    @property
    def modified_count(self) -> int:
        return self.meta.modified

    @property
    def created_count(self) -> int:
        return self.meta.created

    @property
    def deleted_count(self) -> int:
        return self.meta.deleted

    @property
    def failed_count(self) -> int:
        return self.meta.failed


def decode_error(message: str, body: Any = None) -> tuple[str, Any]:
    """Decode an engine error.

    The engine error object is taken from `body` or, failing that,
    from the JSON that follows the first ": " in the message.

    Returns:
        (message with reason and root cause appended, error object).
        The message is returned unchanged when no reason is found.
    """
    title = ""
    data = body
    if not isinstance(data, dict):
        pos = message.find(": ")
        if pos < 0:
            return message, {}
        title = message[: pos + 2]
        try:
            data = json.loads(message[pos + 2 :])
        except ValueError:
            return message, {}
    if not isinstance(data, dict):
        return message, {}

    error = data.get("error")
    reason = error.get("reason") if isinstance(error, dict) else None
    if not reason:
        return message, {}
    msg = f"{title}{reason}" if title else f"{message}: {reason}"
    root_cause = error.get("root_cause") or []
    if root_cause and isinstance(root_cause[0], dict):
        cause = root_cause[0].get("reason")
        if cause:
            msg = f"{msg} - {cause}"
    return msg, data


def _int(value: Any, default: int) -> int:
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return default
