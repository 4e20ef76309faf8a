from __future__ import annotations

from enum import Enum
from typing import Any, Callable

from pydantic import model_validator

from querybridge.core import DataModel
from querybridge.ql import ComparisonOp

RESERVED_FIELDS = ("_id", "_index", "_meta")


class BooleanConnector(str, Enum):
    """Connector joining a condition to the ones before it."""

    AND = "and"
    OR = "or"
    AND_NOT = "and not"
    OR_NOT = "or not"


class ConditionOp(str, Enum):
    """Condition operator.

    Attributes:
        EQ: Equals.
        NEQ: Not equals.
        LT: Less than.
        LTE: Less than equals.
        GT: Greater than.
        GTE: Greater than equals.
        IN: Value in list.
        NIN: Value not in list.
        BETWEEN: Value between [lower, upper].
        NOT_BETWEEN: Value outside [lower, upper].
        EXISTS: Field exists.
        NOT_EXISTS: Field doesn't exist.
        LIKE: SQL style pattern with % and _.
        NOT_LIKE: Negated LIKE.
        REGEX: Regular expression.
        PHRASE: Full-text phrase match.
        PHRASE_PREFIX: Full-text phrase prefix match.
        EXACT: Exact match on the keyword field.
        HAS: Relation count predicate.
        GROUP: Parenthesized group of conditions.
    """

    EQ = "="
    NEQ = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    IN = "in"
    NIN = "not in"
    BETWEEN = "between"
    NOT_BETWEEN = "not between"
    EXISTS = "exists"
    NOT_EXISTS = "not exists"
    LIKE = "like"
    NOT_LIKE = "not like"
    REGEX = "regex"
    PHRASE = "phrase"
    PHRASE_PREFIX = "phrase_prefix"
    EXACT = "exact"
    HAS = "has"
    GROUP = "group"


class Condition(DataModel):
    """Query condition.

    Attributes:
        field:
            Attribute name. Relation path for HAS.
        op:
            Condition operator.
        value:
            Compared value.
        boolean:
            Connector to the previous condition.
        conditions:
            Inner conditions for GROUP and HAS.
        count_op:
            Comparison between related document count
            and `count` for HAS.
        count:
            Related document count threshold for HAS.
    """

    field: str | None = None
    op: ConditionOp = ConditionOp.EQ
    value: Any = None
    boolean: BooleanConnector = BooleanConnector.AND
    conditions: list[Condition] | None = None
    count_op: ComparisonOp = ComparisonOp.GTE
    count: int = 1


class QueryOptions(DataModel):
    """Query options.

    Unknown keys are kept in `extra` and passed
    to the engine as is.
    """

    sort: Any = None
    """Sort terms."""

    skip: int | None = None
    """Number of documents to skip."""

    limit: int | None = None
    """Maximum number of documents."""

    highlights: list[str] | dict[str, Any] | None = None
    """Fields to highlight."""

    min_score: float | None = None
    """Minimum relevance score."""

    search_after: list[Any] | None = None
    """Sort values to resume after."""

    extra: dict[str, Any] = {}
    """Free-form engine options."""

    @model_validator(mode="before")
    @classmethod
    def _collect_extra(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = {k: v for k, v in data.items() if k in cls.model_fields}
        extra = dict(known.get("extra") or {})
        extra.update(
            {k: v for k, v in data.items() if k not in cls.model_fields}
        )
        # Engine paging keys go through limit and skip so the result
        # window clamp always applies.
        size = extra.pop("size", None)
        offset = extra.pop("from_", extra.pop("from", None))
        if known.get("limit") is None and size is not None:
            known["limit"] = size
        if known.get("skip") is None and offset is not None:
            known["skip"] = offset
        known["extra"] = extra
        return known

    def without(self, *names: str) -> QueryOptions:
        return self.model_copy(update={name: None for name in names})


class QueryDescriptor(DataModel):
    """Backend-agnostic query description.

    Conditions can be added fluently::

        query = (
            QueryDescriptor()
            .where("status", "=", "active")
            .or_where("views", ">", 100)
            .where_has("comments", lambda q: q.where("spam", "=", False))
            .order_by("created_at", "desc")
            .limit(20)
        )
    """

    conditions: list[Condition] = []
    options: QueryOptions = QueryOptions()
    columns: list[str] = ["*"]

    def where(
        self,
        field: str,
        op: str | ConditionOp = ConditionOp.EQ,
        value: Any = None,
        boolean: str | BooleanConnector = BooleanConnector.AND,
    ) -> QueryDescriptor:
        self.conditions.append(
            Condition(
                field=field,
                op=ConditionOp(op),
                value=value,
                boolean=BooleanConnector(boolean),
            )
        )
        return self

    def or_where(
        self,
        field: str,
        op: str | ConditionOp = ConditionOp.EQ,
        value: Any = None,
    ) -> QueryDescriptor:
        return self.where(field, op, value, BooleanConnector.OR)

    def where_not(
        self,
        field: str,
        op: str | ConditionOp = ConditionOp.EQ,
        value: Any = None,
    ) -> QueryDescriptor:
        return self.where(field, op, value, BooleanConnector.AND_NOT)

    def where_in(self, field: str, values: list[Any]) -> QueryDescriptor:
        return self.where(field, ConditionOp.IN, list(values))

    def where_not_in(self, field: str, values: list[Any]) -> QueryDescriptor:
        return self.where(field, ConditionOp.NIN, list(values))

    def where_between(
        self, field: str, lower: Any, upper: Any
    ) -> QueryDescriptor:
        return self.where(field, ConditionOp.BETWEEN, [lower, upper])

    def where_null(self, field: str) -> QueryDescriptor:
        return self.where(field, ConditionOp.NOT_EXISTS)

    def where_not_null(self, field: str) -> QueryDescriptor:
        return self.where(field, ConditionOp.EXISTS)

    def where_group(
        self,
        callback: Callable[[QueryDescriptor], Any],
        boolean: str | BooleanConnector = BooleanConnector.AND,
    ) -> QueryDescriptor:
        inner = QueryDescriptor()
        callback(inner)
        self.conditions.append(
            Condition(
                op=ConditionOp.GROUP,
                conditions=inner.conditions,
                boolean=BooleanConnector(boolean),
            )
        )
        return self

    def where_has(
        self,
        relation: str,
        callback: Callable[[QueryDescriptor], Any] | None = None,
        op: str | ComparisonOp = ComparisonOp.GTE,
        count: int = 1,
        boolean: str | BooleanConnector = BooleanConnector.AND,
    ) -> QueryDescriptor:
        inner = QueryDescriptor()
        if callback is not None:
            callback(inner)
        self.conditions.append(
            Condition(
                field=relation,
                op=ConditionOp.HAS,
                conditions=inner.conditions,
                count_op=ComparisonOp(op),
                count=count,
                boolean=BooleanConnector(boolean),
            )
        )
        return self

    def order_by(
        self, field: str, direction: str = "asc", **payload: Any
    ) -> QueryDescriptor:
        sort = self.options.sort
        if sort is None:
            sort = []
        elif not isinstance(sort, list):
            sort = [sort]
        sort.append({field: {"order": direction, **payload}})
        self.options.sort = sort
        return self

    def skip(self, skip: int) -> QueryDescriptor:
        self.options.skip = skip
        return self

    def limit(self, limit: int) -> QueryDescriptor:
        self.options.limit = limit
        return self

    def select(self, *columns: str) -> QueryDescriptor:
        self.columns = list(columns)
        return self


class AggregateFunction(str, Enum):
    """Aggregate function."""

    COUNT = "count"
    SUM = "sum"
    MIN = "min"
    MAX = "max"
    AVG = "avg"
    MATRIX = "matrix"


class DocumentMeta(DataModel):
    """Document metadata.

    Attributes:
        index: Origin index.
        id: Document id.
        score: Relevance score.
        sort: Sort values of the hit.
        highlights: Highlight fragments per field.
        query: Query level metadata of the response.
        extra: Caller metadata attached to the response.
    """

    index: str | None = None
    id: str | None = None
    score: float | None = None
    sort: list[Any] | None = None
    highlights: dict[str, Any] | None = None
    query: dict[str, Any] | None = None
    extra: dict[str, Any] = {}

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {}
        if self.index is not None:
            record["_index"] = self.index
        if self.id is not None:
            record["_id"] = self.id
        if self.score is not None:
            record["_score"] = self.score
        if self.sort is not None:
            record["sort"] = self.sort
        if self.highlights is not None:
            record["highlights"] = self.highlights
        if self.query is not None:
            record["_query"] = self.query
        record.update(self.extra)
        return record


class Document(DataModel):
    """Document.

    Attributes:
        id: Document id. None when the engine assigns it.
        index: Origin index.
        value: Document fields.
        meta: Document metadata.
    """

    id: str | None = None
    index: str | None = None
    value: dict[str, Any] = {}
    meta: DocumentMeta = DocumentMeta()

    @staticmethod
    def from_record(record: dict[str, Any] | Document) -> Document:
        if isinstance(record, Document):
            return record
        value = {k: v for k, v in record.items() if k not in RESERVED_FIELDS}
        id = record.get("_id")
        return Document(
            id=str(id) if id is not None else None,
            index=record.get("_index"),
            value=value,
        )

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {}
        if self.id is not None:
            record["_id"] = self.id
        if self.index is not None:
            record["_index"] = self.index
        record.update(self.value)
        record["_meta"] = self.meta.to_record()
        return record

    def get(self, field: str, default: Any = None) -> Any:
        return self.value.get(field, default)


class BulkError(DataModel):
    """Failed bulk item."""

    error: Any = None
    """Engine error."""

    payload: dict[str, Any] = {}
    """Record that failed."""


class BulkResult(DataModel):
    """Bulk insert result."""

    has_errors: bool = False
    took: int = 0
    total: int = 0
    success: int = 0
    created: int = 0
    modified: int = 0
    failed: int = 0
    data: list[Document] = []
    error_bag: list[BulkError] = []
