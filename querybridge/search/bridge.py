from __future__ import annotations

import logging
from typing import Any, Callable, NoReturn

from elastic_transport import TransportError
from elasticsearch import ApiError, Elasticsearch

from querybridge.core import warn
from querybridge.core.exceptions import (
    BadRequestError,
    ParameterError,
    QueryError,
)
from querybridge.ql import QueryProcessor, Update

from ._condition_parser import ConditionParser, Conditions
from ._config import BridgeConfig, prefixed
from ._index_interpreter import IndexInterpreter
from ._keyword_fields import KeywordFieldCache
from ._models import (
    AggregateFunction,
    BulkError,
    BulkResult,
    ConditionOp,
    Document,
    DocumentMeta,
    QueryOptions,
)
from ._parameter_builder import DEFAULT_MAX_SIZE, ParameterBuilder
from ._results import Results
from ._sanitizer import BucketDecoder, ResponseSanitizer

logger = logging.getLogger(__name__)

DEFAULT_KEEP_ALIVE = "5m"
TRANSPORT_ERRORS = (ApiError, TransportError)

Aggregate = Callable[[Conditions, Any, list[str]], Results]


class Bridge:
    """Query bridge to an Elasticsearch index.

    Every operation builds its request with `ParameterBuilder`,
    issues one or a fixed sequence of client calls, and returns
    a `Results` envelope. Transport and engine failures are raised
    as `QueryError`, after writing a diagnostic document to
    `error_logging_index` when one is configured.

    The bridge holds a lazily loaded keyword field cache and is
    not safe for concurrent use without external locking.
    """

    client: Elasticsearch
    index: str
    index_prefix: str | None
    max_size: int
    error_logging_index: str | None
    builder: ParameterBuilder

    _keyword_fields: KeywordFieldCache
    _aggregates: dict[AggregateFunction, Aggregate]
    _distinct_aggregates: dict[AggregateFunction, Aggregate]

    def __init__(
        self,
        client: Elasticsearch,
        index: str,
        max_size: int = DEFAULT_MAX_SIZE,
        index_prefix: str | None = None,
        error_logging_index: str | None = None,
    ):
        """Initialize.

        Args:
            client:
                Elasticsearch client.
            index:
                Index to query, without prefix.
            max_size:
                Maximum result window.
            index_prefix:
                Prefix joined to index names as `<prefix>_<index>`.
            error_logging_index:
                Index that receives diagnostic documents for
                failed queries.
        """
        self.client = client
        self.index_prefix = index_prefix
        self.index = prefixed(index, index_prefix) or index
        self.max_size = max_size
        self.error_logging_index = error_logging_index
        self._keyword_fields = KeywordFieldCache(loader=self._load_field_map)
        self.builder = ParameterBuilder(
            index=self.index,
            max_size=max_size,
            keyword_resolver=self.parse_required_keyword_mapping,
        )
        self._aggregates = {
            AggregateFunction.COUNT: self._count_aggregate,
            AggregateFunction.SUM: self._sum_aggregate,
            AggregateFunction.MIN: self._min_aggregate,
            AggregateFunction.MAX: self._max_aggregate,
            AggregateFunction.AVG: self._avg_aggregate,
            AggregateFunction.MATRIX: self._matrix_aggregate,
        }
        self._distinct_aggregates = {
            AggregateFunction.COUNT: self._count_distinct_aggregate,
            AggregateFunction.SUM: self._sum_distinct_aggregate,
            AggregateFunction.MIN: self._min_distinct_aggregate,
            AggregateFunction.MAX: self._max_distinct_aggregate,
            AggregateFunction.AVG: self._avg_distinct_aggregate,
            AggregateFunction.MATRIX: self._matrix_distinct_aggregate,
        }

    @staticmethod
    def from_config(
        config: BridgeConfig, client: Elasticsearch | None = None
    ) -> Bridge:
        if not config.index:
            raise BadRequestError("Bridge config needs an index")
        if client is None:
            if not config.hosts:
                raise BadRequestError("Bridge config needs hosts")
            client = Elasticsearch(**config.get_client_params())
        return Bridge(
            client=client,
            index=config.index,
            max_size=config.max_size,
            index_prefix=config.index_prefix,
            error_logging_index=config.error_logging_index,
        )

    def find(
        self,
        conditions: Conditions = None,
        options: QueryOptions | dict | None = None,
        columns: list[str] | str | None = None,
        stashed_meta: dict[str, Any] | None = None,
    ) -> Results:
        params = self.builder.build_params(conditions, options, columns)
        return self._return_search(params, "find", stashed_meta)

    def search(
        self,
        text: str | dict[str, Any] | None,
        search_options: dict[str, Any] | None = None,
        conditions: Conditions = None,
        options: QueryOptions | dict | None = None,
        fields: list[str] | dict[str, float] | None = None,
        columns: list[str] | str | None = None,
        stashed_meta: dict[str, Any] | None = None,
    ) -> Results:
        """Full-text search combined with conditions.

        Args:
            text:
                Query text, or a ready query clause.
            search_options:
                match_mode, query_type, fuzziness,
                minimum_should_match, analyzer, boost.
            conditions:
                Filter conditions.
            options:
                Sort, pagination and engine options.
            fields:
                Searched fields, or field to boost mapping.
            columns:
                Projection.
            stashed_meta:
                Metadata merged into every returned document.
        """
        params = self.builder.build_search_params(
            text, search_options, conditions, options, fields, columns
        )
        return self._return_search(params, "search", stashed_meta)

    def get_by_id(
        self,
        id: str | int,
        columns: list[str] | str | None = None,
        soft_delete_column: str | None = None,
    ) -> Results:
        """Fetch one document.

        A document whose soft delete column is truthy is reported
        as not found (error code 404), as is a missing document.
        """
        tag = "get_by_id"
        params: dict[str, Any] = {"index": self.index, "id": str(id)}
        columns = self.builder.parse_columns(columns)
        if "*" not in columns:
            if soft_delete_column and soft_delete_column not in columns:
                columns.append(soft_delete_column)
            params["source"] = columns
        response = None
        try:
            response = _body(self.client.get(**params))
        except TRANSPORT_ERRORS as e:
            if _status_code(e) != 404:
                self._throw_error(e, params, tag)
            logger.debug("Document %s not found in %s", id, self.index)
        return ResponseSanitizer.get(response, params, soft_delete_column, tag)

    def distinct(
        self,
        conditions: Conditions = None,
        options: QueryOptions | dict | None = None,
        columns: list[str] | str | None = None,
        include_doc_count: bool = False,
    ) -> Results:
        """Distinct value combinations of the columns.

        Builds one nested terms aggregation level per column and
        flattens the buckets into rows. Skip and limit are applied
        to the rows.
        """
        tag = "distinct"
        options, columns = self.builder.descriptor_defaults(
            conditions, options, columns
        )
        options = self.builder.parse_options(options)
        columns = self._columns(columns)
        if not columns:
            raise ParameterError("Distinct needs at least one column")
        sort = None
        sort_items = self.builder.sort_items(options.sort)
        if sort_items:
            field, payload = sort_items[0]
            order = payload.get("order") or "asc"
            sort = (field, str(getattr(order, "value", order)).lower())
        skip = options.skip or 0
        limit = options.limit or 0

        params = self.builder.build_params(
            conditions, options.without("sort", "skip", "limit")
        )
        params["size"] = 0
        params["aggs"] = self.builder.distinct_aggregations(columns, sort)
        try:
            response = _body(self.client.search(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)

        data = BucketDecoder.decode(
            response.get("aggregations") or {}, columns, include_doc_count
        )
        if skip or limit:
            data = data[skip : skip + limit if limit else None]
        meta = ResponseSanitizer.search_meta(response)
        return Results.create(data, meta, params, tag)

    def open_pit(self, keep_alive: str = DEFAULT_KEEP_ALIVE) -> str:
        tag = "open_pit"
        params = {"index": self.index, "keep_alive": keep_alive}
        try:
            response = _body(self.client.open_point_in_time(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        pit_id = response.get("id")
        if not pit_id:
            self._throw_error(
                QueryError("Error on PIT creation, no id returned"),
                params,
                tag,
            )
        return pit_id

    def pit_search(
        self,
        conditions: Conditions,
        options: QueryOptions | dict | None,
        columns: list[str] | str | None,
        pit_id: str,
        search_after: list[Any] | None = None,
        keep_alive: str = DEFAULT_KEEP_ALIVE,
    ) -> Results:
        """Search one page of a point in time.

        Pass `meta.sort` of the previous page as `search_after`
        to read the next one.
        """
        tag = "pit_search"
        params = self.builder.build_pit_params(
            conditions, options, columns, pit_id, search_after, keep_alive
        )
        try:
            response = _body(self.client.search(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        return ResponseSanitizer.pit_search(response, params, tag)

    def close_pit(self, pit_id: str) -> bool:
        tag = "close_pit"
        params = {"id": pit_id}
        try:
            response = _body(self.client.close_point_in_time(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        return bool(response.get("succeeded", False))

    def search_raw(
        self, body: dict[str, Any], return_raw: bool = False
    ) -> Results:
        tag = "search_raw"
        params = {"index": self.index, "body": body}
        try:
            response = _body(self.client.search(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        if return_raw:
            return Results.create(dict(response), None, params, tag)
        return ResponseSanitizer.search(response, params, tag)

    def aggregate_raw(self, body: dict[str, Any]) -> Results:
        tag = "aggregate_raw"
        params = {"index": self.index, "body": body}
        try:
            response = _body(self.client.search(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        return ResponseSanitizer.raw_aggregations(response, params, tag)

    def indices_dsl(self, method: str, params: dict[str, Any]) -> Results:
        tag = "indices_dsl"
        func = getattr(self.client.indices, method, None)
        if method.startswith("_") or not callable(func):
            raise ParameterError(f"Indices method {method!r} not supported")
        try:
            response = _body(func(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        return Results.create(response, None, params, tag)

    def to_dsl(
        self,
        conditions: Conditions = None,
        options: QueryOptions | dict | None = None,
        columns: list[str] | str | None = None,
    ) -> dict[str, Any]:
        return self.builder.build_params(conditions, options, columns)

    def to_dsl_for_search(
        self,
        text: str | dict[str, Any] | None,
        search_options: dict[str, Any] | None = None,
        conditions: Conditions = None,
        options: QueryOptions | dict | None = None,
        fields: list[str] | dict[str, float] | None = None,
        columns: list[str] | str | None = None,
    ) -> dict[str, Any]:
        return self.builder.build_search_params(
            text, search_options, conditions, options, fields, columns
        )

    def save(
        self,
        record: dict[str, Any] | Document,
        refresh: bool | str | None = None,
    ) -> Results:
        """Create or replace a document.

        The document is replaced when the record carries an id,
        otherwise the engine assigns one.
        """
        tag = "save"
        params = self.builder.build_write_params(record, refresh)
        try:
            response = _body(self.client.index(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        id = response.get("_id")
        index = response.get("_index") or self.index
        document = Document(
            id=str(id) if id is not None else None,
            index=index,
            value=params["document"],
            meta=DocumentMeta(index=index, id=id),
        )
        meta = dict(response)
        counter = "created" if response.get("result") == "created" else (
            "modified"
        )
        meta[counter] = 1
        return Results.create(document, meta, params, tag)

    def insert_one(
        self,
        record: dict[str, Any] | Document,
        refresh: bool | str | None = None,
    ) -> Results:
        document = Document.from_record(record).model_copy(
            update={"id": None}
        )
        return self.save(document, refresh)

    def insert_bulk(
        self,
        records: list[dict[str, Any] | Document],
        return_data: bool = False,
        refresh: bool | str | None = None,
    ) -> BulkResult:
        """Index records with one bulk request.

        Response items are paired with the records by position.
        A failed item goes to the error bag with its payload.
        """
        tag = "insert_bulk"
        params = self.builder.build_bulk_params(records, refresh)
        try:
            response = _body(self.client.bulk(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)

        operations = params["operations"]
        result = BulkResult(
            has_errors=bool(response.get("errors")),
            took=response.get("took") or 0,
        )
        for position, item in enumerate(response.get("items") or []):
            result.total += 1
            outcome = item.get("index") or next(iter(item.values()), {})
            payload = operations[position * 2 + 1]
            id = outcome.get("_id")
            if outcome.get("error"):
                result.failed += 1
                result.error_bag.append(
                    BulkError(
                        error=outcome["error"],
                        payload={"_id": id, **payload} if id else payload,
                    )
                )
                continue
            result.success += 1
            if outcome.get("result") == "created":
                result.created += 1
            else:
                result.modified += 1
            if return_data:
                index = outcome.get("_index") or self.index
                result.data.append(
                    Document(
                        id=id,
                        index=index,
                        value=payload,
                        meta=DocumentMeta(index=index, id=id),
                    )
                )
        if result.failed:
            warn(
                "Bulk insert into %s: %d of %d items failed",
                self.index,
                result.failed,
                result.total,
            )
        return result

    def update_many(
        self,
        conditions: Conditions,
        new_values: dict[str, Any],
        options: QueryOptions | dict | None = None,
        refresh: bool | str | None = None,
    ) -> Results:
        """Set fields on every matching document.

        Not atomic: documents are read with `find` and saved one
        by one. Concurrent writers can overwrite each other, and a
        failed save is counted and recorded in the error bag while
        the remaining documents are still saved.
        """
        tag = "update_many"
        update = Update()
        for field, value in new_values.items():
            update.put(field, value)
        return self._update_each(
            tag, conditions, update, options, refresh, new_values
        )

    def increment_many(
        self,
        conditions: Conditions,
        new_values: dict[str, Any],
        options: QueryOptions | dict | None = None,
        refresh: bool | str | None = None,
    ) -> Results:
        """Increment numeric fields on every matching document.

        `new_values` is `{"inc": {field: delta}, "set": {field: value}}`.
        An absent field counts as zero. Not atomic, see `update_many`.
        """
        tag = "increment_many"
        increments = new_values.get("inc") or {}
        if not increments:
            raise ParameterError("Increment needs at least one inc field")
        update = Update()
        for field, delta in increments.items():
            update.increment(field, delta)
        for field, value in (new_values.get("set") or {}).items():
            update.put(field, value)
        return self._update_each(
            tag, conditions, update, options, refresh, new_values
        )

    def delete_all(
        self,
        conditions: Conditions = None,
        options: QueryOptions | dict | None = None,
    ) -> Results:
        """Delete matching documents; `data` is the deleted count.

        A single `_id` equality condition deletes that document
        directly, anything else runs a delete by query.
        """
        tag = "delete_all"
        normalized = ConditionParser.normalize(conditions)
        if (
            len(normalized) == 1
            and normalized[0].field == "_id"
            and normalized[0].op == ConditionOp.EQ
            and isinstance(normalized[0].value, (str, int))
        ):
            params = {"index": self.index, "id": str(normalized[0].value)}
            try:
                response = _body(self.client.delete(**params))
            except TRANSPORT_ERRORS as e:
                self._throw_error(e, params, tag)
            count = 1 if response.get("result") == "deleted" else 0
        else:
            params = self.builder.build_delete_params(normalized, options)
            try:
                response = _body(self.client.delete_by_query(**params))
            except TRANSPORT_ERRORS as e:
                self._throw_error(e, params, tag)
            count = response.get("deleted") or 0
        return Results.create(
            count, {**response, "deleteCount": count}, params, tag
        )

    def aggregate(
        self,
        function: AggregateFunction | str,
        conditions: Conditions = None,
        options: QueryOptions | dict | None = None,
        columns: list[str] | str | None = None,
    ) -> Results:
        handler = self._aggregates[_aggregate_function(function)]
        return handler(conditions, options, self._columns(columns))

    def distinct_aggregate(
        self,
        function: AggregateFunction | str,
        conditions: Conditions = None,
        options: QueryOptions | dict | None = None,
        columns: list[str] | str | None = None,
    ) -> Results:
        handler = self._distinct_aggregates[_aggregate_function(function)]
        return handler(conditions, options, self._columns(columns))

    def multiple_aggregate(
        self,
        functions: list[AggregateFunction | str],
        conditions: Conditions = None,
        options: QueryOptions | dict | None = None,
        column: str | None = None,
    ) -> Results:
        """Several aggregate functions over one column.

        Returns:
            Raw aggregations keyed `<function>_<column>`.
        """
        tag = "multiple_aggregate"
        if not column:
            raise ParameterError("Multiple aggregate needs a column")
        params = self.builder.build_params(conditions, options)
        params["size"] = 0
        params["aggs"] = self.builder.multiple_aggregations(
            [_aggregate_function(f) for f in functions], column
        )
        try:
            response = _body(self.client.search(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        data = dict(response.get("aggregations") or {})
        meta = ResponseSanitizer.search_meta(response)
        return Results.create(data, meta, params, tag)

    def get_indices(self, all: bool = False) -> dict[str, Any]:
        tag = "get_indices"
        params = {"index": "*" if all else self.index}
        try:
            return dict(_body(self.client.indices.get(**params)))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)

    def cat_indices(self, all: bool = False) -> list[dict[str, Any]]:
        tag = "cat_indices"
        params = {"format": "json"}
        try:
            response = _body(self.client.cat.indices(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        return IndexInterpreter.cat_indices(list(response or []), all)

    def index_exists(self, index: str | None = None) -> bool:
        try:
            return bool(self.client.indices.exists(index=index or self.index))
        except TRANSPORT_ERRORS as e:
            logger.debug("Index exists check failed: %s", e)
            return False

    def index_settings(self, index: str | None = None) -> dict[str, Any]:
        tag = "index_settings"
        params = {"index": index or self.index}
        try:
            return dict(_body(self.client.indices.get_settings(**params)))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)

    def index_mappings(self, index: str | None = None) -> dict[str, Any]:
        tag = "index_mappings"
        params = {"index": index or self.index}
        try:
            return dict(_body(self.client.indices.get_mapping(**params)))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)

    def field_mapping(
        self,
        index: str | None = None,
        field: str | list[str] = "*",
        raw: bool = False,
    ) -> dict[str, Any]:
        """Field mapping of an index.

        Returns:
            The engine response when `raw`, otherwise a sorted
            field name to type mapping with multi-fields listed
            as `field.sub`.
        """
        tag = "field_mapping"
        params = {"index": index or self.index, "fields": field}
        try:
            response = dict(
                _body(self.client.indices.get_field_mapping(**params))
            )
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        if raw:
            return response
        return ResponseSanitizer.field_map(response)

    def index_create(self, settings: dict[str, Any]) -> bool:
        tag = "index_create"
        params = IndexInterpreter.build_index_map(self.index, settings)
        try:
            response = _body(self.client.indices.create(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        self.invalidate_keyword_fields()
        return bool(response.get("acknowledged"))

    def index_modify(self, settings: dict[str, Any]) -> bool:
        tag = "index_modify"
        params = IndexInterpreter.build_mapping_update(self.index, settings)
        try:
            self.client.indices.put_mapping(**params)
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        self.invalidate_keyword_fields()
        return True

    def index_delete(self) -> bool:
        tag = "index_delete"
        params = {"index": self.index}
        try:
            self.client.indices.delete(**params)
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        self.invalidate_keyword_fields()
        return True

    def index_analyzer_settings(self, settings: dict[str, Any]) -> bool:
        """Update analysis settings.

        The index is closed for the update and reopened afterwards,
        also when the update fails.
        """
        tag = "index_analyzer_settings"
        params = IndexInterpreter.build_analyzer_settings(
            self.index, settings
        )
        try:
            self.client.indices.close(index=self.index)
            try:
                self.client.indices.put_settings(**params)
            finally:
                self.client.indices.open(index=self.index)
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        return True

    def reindex(self, old_index: str, new_index: str) -> Results:
        tag = "reindex"
        params = {
            "source": {"index": prefixed(old_index, self.index_prefix)},
            "dest": {"index": prefixed(new_index, self.index_prefix)},
        }
        try:
            response = _body(self.client.reindex(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        data = {
            key: response.get(key)
            for key in (
                "took",
                "total",
                "created",
                "updated",
                "deleted",
                "batches",
                "version_conflicts",
                "noops",
                "retries",
            )
        }
        return Results.create(data, dict(response), params, tag)

    def parse_required_keyword_mapping(self, field: str) -> str | None:
        return self._keyword_fields.resolve(field)

    def invalidate_keyword_fields(self) -> None:
        self._keyword_fields.invalidate()

    def _load_field_map(self) -> dict[str, str]:
        return self.field_mapping(self.index, "*")

    def _return_search(
        self,
        params: dict[str, Any],
        tag: str,
        stashed_meta: dict[str, Any] | None = None,
    ) -> Results:
        try:
            response = _body(self.client.search(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        return ResponseSanitizer.search(response, params, tag, stashed_meta)

    def _update_each(
        self,
        tag: str,
        conditions: Conditions,
        update: Update,
        options: QueryOptions | dict | None,
        refresh: bool | str | None,
        new_values: dict[str, Any],
    ) -> Results:
        found = self.find(conditions, options)
        data: list[Document] = []
        error_bag: list[dict[str, Any]] = []
        modified = 0
        for document in found.data:
            try:
                value = QueryProcessor.update_item(document.value, update)
                saved = self.save(
                    Document(id=document.id, value=value), refresh
                )
            except (QueryError, BadRequestError) as e:
                warn("Update of %s in %s failed: %s", document.id, tag, e)
                error_bag.append(
                    {
                        "_id": document.id,
                        "error": str(e),
                        "code": e.status_code,
                    }
                )
                continue
            modified += 1
            data.append(saved.data)

        params = {
            "query": self.builder.build_query(conditions),
            "query_options": self.builder.parse_options(options).to_dict(),
            "update_values": new_values,
        }
        meta = {
            "modified": modified,
            "failed": len(error_bag),
            "error_bag": error_bag,
        }
        return Results.create(data, meta, params, tag)

    def _columns(self, columns: list[str] | str | None) -> list[str]:
        return [c for c in self.builder.parse_columns(columns) if c != "*"]

    def _count_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        tag = "count_aggregate"
        params = self.builder.build_count_params(conditions)
        try:
            response = _body(self.client.count(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        return Results.create(
            response.get("count") or 0, dict(response), params, tag
        )

    def _sum_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        return self._metric_aggregate(
            AggregateFunction.SUM, conditions, options, columns
        )

    def _min_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        return self._metric_aggregate(
            AggregateFunction.MIN, conditions, options, columns
        )

    def _max_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        return self._metric_aggregate(
            AggregateFunction.MAX, conditions, options, columns
        )

    def _avg_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        return self._metric_aggregate(
            AggregateFunction.AVG, conditions, options, columns
        )

    def _metric_aggregate(
        self,
        function: AggregateFunction,
        conditions: Conditions,
        options: Any,
        columns: list[str],
    ) -> Results:
        tag = f"{function.value}_aggregate"
        if not columns:
            raise ParameterError(f"{function.value} aggregate needs a column")
        params = self.builder.build_params(conditions, options)
        params["size"] = 0
        params["aggs"] = self.builder.metric_aggregations(function, columns)
        try:
            response = _body(self.client.search(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        return ResponseSanitizer.aggregations(response, params, tag)

    def _matrix_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        tag = "matrix_aggregate"
        if not columns:
            raise ParameterError("Matrix aggregate needs columns")
        params = self.builder.build_params(conditions, options)
        params["size"] = 0
        params["aggs"] = self.builder.matrix_aggregation(columns)
        try:
            response = _body(self.client.search(**params))
        except TRANSPORT_ERRORS as e:
            self._throw_error(e, params, tag)
        aggregations = response.get("aggregations") or {}
        data = dict(aggregations.get("statistics") or {})
        meta = ResponseSanitizer.search_meta(response)
        return Results.create(data, meta, params, tag)

    def _distinct_numbers(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> tuple[list[int | float], Results]:
        distinct = self.distinct(conditions, options, columns)
        column = columns[0].replace(".keyword", "")
        values = [
            row[column]
            for row in distinct.data
            if isinstance(row.get(column), (int, float))
            and not isinstance(row.get(column), bool)
        ]
        return values, distinct

    def _count_distinct_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        tag = "count_distinct_aggregate"
        distinct = self.distinct(conditions, options, columns)
        return Results.create(
            len(distinct.data), distinct.meta, distinct.params, tag
        )

    def _sum_distinct_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        tag = "sum_distinct_aggregate"
        values, distinct = self._distinct_numbers(conditions, options, columns)
        return Results.create(sum(values), distinct.meta, distinct.params, tag)

    def _min_distinct_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        tag = "min_distinct_aggregate"
        values, distinct = self._distinct_numbers(conditions, options, columns)
        return Results.create(
            min(values, default=0), distinct.meta, distinct.params, tag
        )

    def _max_distinct_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        tag = "max_distinct_aggregate"
        values, distinct = self._distinct_numbers(conditions, options, columns)
        return Results.create(
            max(values, default=0), distinct.meta, distinct.params, tag
        )

    def _avg_distinct_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        tag = "avg_distinct_aggregate"
        values, distinct = self._distinct_numbers(conditions, options, columns)
        avg = sum(values) / len(values) if values else 0
        return Results.create(avg, distinct.meta, distinct.params, tag)

    def _matrix_distinct_aggregate(
        self, conditions: Conditions, options: Any, columns: list[str]
    ) -> Results:
        self._throw_error(
            QueryError("Matrix distinct aggregate not supported"),
            {},
            "matrix_distinct_aggregate",
        )

    def _throw_error(
        self, exception: Exception, params: dict[str, Any], query_tag: str
    ) -> NoReturn:
        tag = query_tag.replace("_", "")
        code = _status_code(exception)
        message = str(exception)
        error = Results.create([], None, params, tag)
        error.set_error(message, code, getattr(exception, "body", None))
        meta = error.get_meta_data_as_dict()
        details = {
            "error": meta["error"]["msg"],
            "details": meta["error"]["data"],
            "code": code,
            "exception": type(exception).__name__,
            "query": tag,
            "params": params,
            "original": message,
        }
        warn("Query %s on %s failed: %s", tag, self.index, details["error"])
        if self.error_logging_index:
            self._log_query(error, details)
        raise QueryError(
            details["error"],
            status_code=code,
            query_tag=tag,
            params=params,
            details=details,
        ) from exception

    def _log_query(self, results: Results, details: dict[str, Any]) -> None:
        try:
            body = results.get_log_formatted_meta_data()
            body["details"] = details
            self.client.index(index=self.error_logging_index, document=body)
        except Exception as e:
            logger.debug("Query log write failed: %s", e)


def _body(response: Any) -> Any:
    return getattr(response, "body", response)


def _status_code(exception: Exception) -> int | None:
    if isinstance(exception, ApiError):
        return exception.meta.status
    if isinstance(exception, QueryError):
        return exception.status_code
    return None


def _aggregate_function(
    function: AggregateFunction | str,
) -> AggregateFunction:
    try:
        return AggregateFunction(function)
    except ValueError:
        raise ParameterError(f"Aggregate function {function!r} not supported")
