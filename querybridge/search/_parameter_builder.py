from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable

from querybridge.core import DataModel
from querybridge.core.exceptions import ParameterError
from querybridge.ql import (
    And,
    Comparison,
    ComparisonOp,
    Expression,
    Field,
    Function,
    FunctionNamespace,
    Not,
    Or,
    OrderBy,
    OrderByDirection,
    QueryFunction,
    QueryFunctionName,
)

from ._condition_parser import ConditionParser, Conditions
from ._models import (
    RESERVED_FIELDS,
    AggregateFunction,
    Document,
    QueryDescriptor,
    QueryOptions,
)

DEFAULT_MAX_SIZE = 10
SHARD_DOC_SORT = {"_shard_doc": {"order": "asc"}}
MATRIX_AGGREGATION = "statistics"

METRIC_AGGREGATIONS = {
    AggregateFunction.COUNT: "value_count",
    AggregateFunction.SUM: "sum",
    AggregateFunction.MIN: "min",
    AggregateFunction.MAX: "max",
    AggregateFunction.AVG: "avg",
}

RANGE_OPS = {
    ComparisonOp.LT: "lt",
    ComparisonOp.LTE: "lte",
    ComparisonOp.GT: "gt",
    ComparisonOp.GTE: "gte",
}

SEARCH_OPTION_KEYS = (
    "match_mode",
    "query_type",
    "fuzziness",
    "minimum_should_match",
    "analyzer",
    "boost",
)


class ParameterBuilder:
    """Builds Elasticsearch request parameters from query descriptors.

    The builder performs no I/O. Sort and aggregation targets on
    text fields go through `keyword_resolver`, which returns the
    keyword variant of a field or None.

    Parameters are shaped as keyword arguments of the
    `elasticsearch.Elasticsearch` client methods.
    """

    index: str
    max_size: int
    keyword_resolver: Callable[[str], str | None] | None

    def __init__(
        self,
        index: str,
        max_size: int = DEFAULT_MAX_SIZE,
        keyword_resolver: Callable[[str], str | None] | None = None,
    ) -> None:
        self.index = index
        self.max_size = max_size
        self.keyword_resolver = keyword_resolver

    def build_params(
        self,
        conditions: Conditions = None,
        options: QueryOptions | dict | None = None,
        columns: list[str] | str | None = None,
        allow_id_sort: bool = False,
    ) -> dict[str, Any]:
        options, columns = self.descriptor_defaults(
            conditions, options, columns
        )
        options = self.parse_options(options)
        params: dict[str, Any] = {
            "index": self.index,
            "query": self.build_query(conditions),
            "size": self.convert_size(options.limit),
        }
        offset = self.convert_offset(options.skip)
        if offset:
            params["from_"] = offset
        sort = self.convert_sort(options.sort, allow_id=allow_id_sort)
        if sort:
            params["sort"] = sort
        source = self.convert_columns(columns)
        if source is not None:
            params["source"] = source
        highlight = self.convert_highlights(options.highlights)
        if highlight is not None:
            params["highlight"] = highlight
        if options.min_score is not None:
            params["min_score"] = options.min_score
        if options.search_after:
            params["search_after"] = options.search_after
        params.update(options.extra)
        return params

    def build_search_params(
        self,
        text: str | dict[str, Any] | None,
        search_options: dict[str, Any] | None = None,
        conditions: Conditions = None,
        options: QueryOptions | dict | None = None,
        fields: list[str] | dict[str, float] | None = None,
        columns: list[str] | str | None = None,
    ) -> dict[str, Any]:
        params = self.build_params(conditions, options, columns)
        if text is None or text == "":
            return params
        if isinstance(text, dict):
            text_query = text
        else:
            text_query = self.convert_text_search(
                text, fields, search_options
            )
        must = [text_query]
        if "match_all" not in params["query"]:
            must.append(params["query"])
        params["query"] = {"bool": {"must": must}}
        return params

    def build_pit_params(
        self,
        conditions: Conditions,
        options: QueryOptions | dict | None,
        columns: list[str] | str | None,
        pit_id: str,
        search_after: list[Any] | None = None,
        keep_alive: str = "5m",
    ) -> dict[str, Any]:
        params = self.build_params(conditions, options, columns)
        params.pop("index")
        params["pit"] = {"id": pit_id, "keep_alive": keep_alive}
        params["sort"] = [*params.get("sort", []), SHARD_DOC_SORT]
        if search_after:
            params["search_after"] = search_after
        return params

    def build_count_params(self, conditions: Conditions) -> dict[str, Any]:
        return {"index": self.index, "query": self.build_query(conditions)}

    def build_delete_params(
        self,
        conditions: Conditions,
        options: QueryOptions | dict | None = None,
    ) -> dict[str, Any]:
        options = self.parse_options(options)
        params = {"index": self.index, "query": self.build_query(conditions)}
        if options.limit is not None:
            params["max_docs"] = options.limit
        params.update(options.extra)
        return params

    def build_write_params(
        self,
        record: dict[str, Any] | Document,
        refresh: bool | str | None = None,
    ) -> dict[str, Any]:
        document = Document.from_record(record)
        params: dict[str, Any] = {
            "index": self.index,
            "document": self.clean_data(self._strip_reserved(document.value)),
        }
        if document.id is not None:
            params["id"] = document.id
        if refresh is not None:
            params["refresh"] = refresh
        return params

    def build_bulk_params(
        self,
        records: list[dict[str, Any] | Document],
        refresh: bool | str | None = None,
    ) -> dict[str, Any]:
        operations: list[dict[str, Any]] = []
        for record in records:
            document = Document.from_record(record)
            action: dict[str, Any] = {"_index": self.index}
            if document.id is not None:
                action["_id"] = document.id
            operations.append({"index": action})
            operations.append(
                self.clean_data(self._strip_reserved(document.value))
            )
        params: dict[str, Any] = {"operations": operations}
        if refresh is not None:
            params["refresh"] = refresh
        return params

    def build_query(self, conditions: Conditions) -> dict[str, Any]:
        expr = ConditionParser.parse(conditions)
        if expr is None:
            return {"match_all": {}}
        return self.convert_expr(expr)

    def descriptor_defaults(
        self,
        conditions: Conditions,
        options: QueryOptions | dict | None,
        columns: list[str] | str | None,
    ) -> tuple[QueryOptions | dict | None, list[str] | str | None]:
        """Take options and columns from a QueryDescriptor
        when the caller passes none."""
        if isinstance(conditions, QueryDescriptor):
            if options is None:
                options = conditions.options
            if columns is None:
                columns = conditions.columns
        return options, columns

    def parse_options(
        self, options: QueryOptions | dict | None
    ) -> QueryOptions:
        if options is None:
            return QueryOptions()
        if isinstance(options, QueryOptions):
            return options
        if isinstance(options, dict):
            return QueryOptions.from_dict(options)
        raise ParameterError(
            f"Options of type {type(options).__name__} not supported"
        )

    def parse_columns(self, columns: list[str] | str | None) -> list[str]:
        if columns is None:
            return ["*"]
        if isinstance(columns, str):
            columns = [c.strip() for c in columns.split(",") if c.strip()]
        return list(columns) or ["*"]

    def convert_columns(
        self, columns: list[str] | str | None
    ) -> list[str] | None:
        columns = self.parse_columns(columns)
        if "*" in columns:
            return None
        return columns

    def convert_size(self, limit: int | None) -> int:
        if limit is None or limit <= 0:
            return self.max_size
        return min(limit, self.max_size)

    def convert_offset(self, skip: int | None) -> int | None:
        if skip is None or skip <= 0:
            return None
        return skip

    def convert_highlights(
        self, highlights: list[str] | dict[str, Any] | None
    ) -> dict[str, Any] | None:
        if not highlights:
            return None
        if isinstance(highlights, dict):
            if "fields" in highlights:
                return highlights
            return {"fields": highlights}
        return {"fields": {field: {} for field in highlights}}

    def keyword_field(self, field: str) -> str:
        if self.keyword_resolver is None or field.startswith("_"):
            return field
        return self.keyword_resolver(field) or field

    def convert_sort(self, sort: Any, allow_id: bool = False) -> list:
        args: list = []
        for field, payload in self.sort_items(sort):
            clause = self.field_sort(field, payload, allow_id)
            if clause:
                args.append(clause)
        return args

    def sort_items(self, sort: Any) -> list[tuple[str, dict[str, Any]]]:
        if not sort:
            return []
        if isinstance(sort, OrderBy):
            return [
                (
                    term.field,
                    {
                        "order": (
                            "desc"
                            if term.direction == OrderByDirection.DESC
                            else "asc"
                        )
                    },
                )
                for term in sort.terms
            ]
        if isinstance(sort, str):
            return [(sort, {"order": "asc"})]
        if isinstance(sort, tuple):
            return [(sort[0], _sort_payload(sort[1]))]
        if isinstance(sort, dict):
            return [(k, _sort_payload(v)) for k, v in sort.items()]
        if isinstance(sort, list):
            items = []
            for item in sort:
                items.extend(self.sort_items(item))
            return items
        raise ParameterError(f"Sort {sort!r} not supported")

    def field_sort(
        self, field: str, payload: dict[str, Any], allow_id: bool = False
    ) -> dict[str, Any] | None:
        if field == "_id" and not allow_id:
            return None
        order = payload.get("order") or "asc"
        if isinstance(order, OrderByDirection):
            order = order.value
        order = str(order).lower()
        if order not in ("asc", "desc"):
            raise ParameterError(f"Sort order {order!r} invalid for {field}")
        if payload.get("is_geo"):
            return self.field_sort_geo(field, order, payload)
        sort: dict[str, Any] = {"order": order}
        if payload.get("mode"):
            sort["mode"] = payload["mode"]
        if payload.get("is_nested"):
            sort["nested"] = {"path": field.split(".")[0]}
            return {field: sort}
        if payload.get("missing"):
            sort["missing"] = payload["missing"]
        return {self.keyword_field(field): sort}

    def field_sort_geo(
        self, field: str, order: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        if payload.get("pin") is None:
            raise ParameterError(f"Geo sort on {field} needs a pin")
        sort: dict[str, Any] = {
            field: payload["pin"],
            "order": order,
            "unit": payload.get("unit") or "km",
        }
        if payload.get("mode"):
            sort["mode"] = payload["mode"]
        if payload.get("type"):
            sort["distance_type"] = payload["type"]
        return {"_geo_distance": sort}

    def metric_aggregations(
        self, function: AggregateFunction, columns: list[str]
    ) -> dict[str, Any]:
        agg = METRIC_AGGREGATIONS[function]
        return {
            f"{function.value}_{column}": {agg: {"field": column}}
            for column in columns
        }

    def matrix_aggregation(self, columns: list[str]) -> dict[str, Any]:
        return {MATRIX_AGGREGATION: {"matrix_stats": {"fields": columns}}}

    def multiple_aggregations(
        self, functions: list[AggregateFunction | str], column: str
    ) -> dict[str, Any]:
        aggs: dict[str, Any] = {}
        for function in functions:
            function = AggregateFunction(function)
            if function == AggregateFunction.MATRIX:
                aggs[f"matrix_{column}"] = {
                    "matrix_stats": {"fields": [column]}
                }
            else:
                aggs.update(self.metric_aggregations(function, [column]))
        return aggs

    def distinct_aggregations(
        self,
        columns: list[str],
        sort: tuple[str, str] | None = None,
    ) -> dict[str, Any]:
        """Nested terms aggregations, one level per column.

        Args:
            columns:
                Columns in bucket hierarchy order.
            sort:
                (field, direction). A column orders that level by
                bucket key, `_count` orders every level by doc count.

        Returns:
            Aggregations keyed `by_<column>`.
        """
        aggs: dict[str, Any] | None = None
        for column in reversed(columns):
            terms: dict[str, Any] = {
                "field": self.keyword_field(column),
                "size": self.max_size,
            }
            if sort is not None:
                field, direction = sort
                if field == column:
                    terms["order"] = {"_key": direction}
                elif field == "_count":
                    terms["order"] = {"_count": direction}
            agg: dict[str, Any] = {"terms": terms}
            if aggs is not None:
                agg["aggs"] = aggs
            aggs = {f"by_{column}": agg}
        return aggs or {}

    def convert_expr(self, expr: Expression | None) -> Any:
        if expr is None or isinstance(
            expr, (str, int, float, bool, dict, list)
        ):
            return expr
        if isinstance(expr, Field):
            return self.convert_field(expr)
        if isinstance(expr, Function):
            return self.convert_func(expr)
        if isinstance(expr, Comparison):
            return self.convert_comparison(expr)
        if isinstance(expr, And):
            return {
                "bool": {
                    "must": [
                        self.convert_expr(e) for e in _flatten(expr, And)
                    ]
                }
            }
        if isinstance(expr, Or):
            return {
                "bool": {
                    "should": [
                        self.convert_expr(e) for e in _flatten(expr, Or)
                    ],
                    "minimum_should_match": 1,
                }
            }
        if isinstance(expr, Not):
            return {"bool": {"must_not": [self.convert_expr(expr.expr)]}}

        raise ParameterError(f"Expression {expr!r} not supported")

    def convert_comparison(self, expr: Comparison) -> dict[str, Any]:
        """
        Convert a Comparison expression into a query clause.

        Supported ops:
        - <, <=, >, >=  -> range
        - =             -> term
        - !=            -> bool.must_not + term
        - IN            -> terms
        - NIN           -> bool.must_not + terms
        - BETWEEN       -> range gte/lte
        - LIKE          -> wildcard, % and _ translated
        """
        op = expr.op
        if isinstance(expr.lexpr, Field):
            field = self.convert_field(expr.lexpr)
            value: Any = expr.rexpr
        elif isinstance(expr.rexpr, Field):
            field = self.convert_field(expr.rexpr)
            value = expr.lexpr
            op = Comparison.reverse_op(op)
        else:
            raise ParameterError("Comparison not supported: no field")
        value = self.clean_data(value)

        if op is ComparisonOp.EQ:
            return {"term": {field: value}}
        if op is ComparisonOp.NEQ:
            return {"bool": {"must_not": [{"term": {field: value}}]}}
        if op in RANGE_OPS:
            return {"range": {field: {RANGE_OPS[op]: value}}}
        if op is ComparisonOp.IN:
            return {"terms": {field: value}}
        if op is ComparisonOp.NIN:
            return {"bool": {"must_not": [{"terms": {field: value}}]}}
        if op is ComparisonOp.BETWEEN:
            if isinstance(value, list) and len(value) == 2:
                return {"range": {field: {"gte": value[0], "lte": value[1]}}}
            raise ParameterError(
                f"BETWEEN expects [lower, upper], got {value!r}"
            )
        if op is ComparisonOp.LIKE:
            return {
                "wildcard": {
                    field: {
                        "value": _like_to_wildcard(str(value)),
                        "case_insensitive": True,
                    }
                }
            }

        raise ParameterError(f"Comparison {expr} not supported")

    def convert_func(self, expr: Function) -> Any:
        name = expr.name
        args = expr.args
        named_args = expr.named_args

        if expr.namespace != FunctionNamespace.BUILTIN:
            raise ParameterError(
                f"Function namespace {expr.namespace} not supported"
            )
        if name == QueryFunctionName.IS_DEFINED:
            return {"exists": {"field": self.convert_field(args[0])}}
        if name == QueryFunctionName.IS_NOT_DEFINED:
            return {
                "bool": {
                    "must_not": [
                        {"exists": {"field": self.convert_field(args[0])}}
                    ]
                }
            }
        if name == QueryFunctionName.MATCH_PHRASE:
            return {"match_phrase": {self.convert_field(args[0]): args[1]}}
        if name == QueryFunctionName.MATCH_PHRASE_PREFIX:
            return {
                "match_phrase_prefix": {self.convert_field(args[0]): args[1]}
            }
        if name == QueryFunctionName.EXACT:
            field = self.keyword_field(self.convert_field(args[0]))
            return {"term": {field: self.clean_data(args[1])}}
        if name == QueryFunctionName.REGEX:
            return {"regexp": {self.convert_field(args[0]): str(args[1])}}
        if name == QueryFunctionName.HAS:
            return self._convert_has(args, named_args)
        if name == QueryFunctionName.TEXT_SEARCH:
            return self._convert_text_search(named_args)

        raise ParameterError(f"Function {name} not supported")

    def convert_field(self, field: Field) -> str:
        return field.path.replace("[", ".").replace("]", "").rstrip(".")

    def convert_text_search(
        self,
        text: str,
        fields: list[str] | dict[str, float] | None = None,
        search_options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        search_options = dict(search_options or {})
        if isinstance(fields, dict):
            boost = {**fields, **(search_options.get("boost") or {})}
            search_options["boost"] = boost
            fields = list(fields)
        named = {
            k: v for k, v in search_options.items() if k in SEARCH_OPTION_KEYS
        }
        func = QueryFunction.text_search(query=text, fields=fields, **named)
        return self.convert_func(func)

    def _convert_has(
        self, args: list[Any], named_args: dict[str, Any]
    ) -> dict[str, Any]:
        path = self.convert_field(args[0])
        where = named_args.get("where")
        op = ComparisonOp(named_args.get("op") or ComparisonOp.GTE)
        count = int(named_args.get("count", 1))
        inner = {"match_all": {}}
        if where is not None:
            inner = self.convert_expr(where)

        def at_least(n: int) -> dict[str, Any]:
            if n <= 0:
                return {"match_all": {}}
            if n == 1:
                return {"nested": {"path": path, "query": inner}}
            return {
                "function_score": {
                    "query": {
                        "nested": {
                            "path": path,
                            "query": {"constant_score": {"filter": inner}},
                            "score_mode": "sum",
                        }
                    },
                    "min_score": n,
                }
            }

        def fewer_than(n: int) -> dict[str, Any]:
            return {"bool": {"must_not": [at_least(n)]}}

        if op is ComparisonOp.GTE:
            return at_least(count)
        if op is ComparisonOp.GT:
            return at_least(count + 1)
        if op is ComparisonOp.LT:
            return fewer_than(count)
        if op is ComparisonOp.LTE:
            return fewer_than(count + 1)
        if op is ComparisonOp.EQ:
            return {
                "bool": {
                    "must": [at_least(count)],
                    "must_not": [at_least(count + 1)],
                }
            }
        if op is ComparisonOp.NEQ:
            return {
                "bool": {
                    "should": [fewer_than(count), at_least(count + 1)],
                    "minimum_should_match": 1,
                }
            }
        raise ParameterError(f"Relation count operator {op.value} invalid")

    def _convert_text_search(
        self, named_args: dict[str, Any]
    ) -> dict[str, Any]:
        query: str = named_args.get("query") or ""
        fields: list[str] = list(named_args.get("fields") or [])
        query_type = named_args.get("query_type")
        boost: dict[str, float] = named_args.get("boost") or {}
        operator = "and" if named_args.get("match_mode") == "and" else "or"

        boosted = [f"{f}^{boost[f]}" if f in boost else f for f in fields]
        boosted.extend(f"{f}^{b}" for f, b in boost.items() if f not in fields)

        def with_options(body: dict[str, Any], *keys: str) -> dict[str, Any]:
            for key in keys:
                if named_args.get(key) is not None:
                    body[key] = named_args[key]
            return body

        if query_type in ("simple", "full"):
            body: dict[str, Any] = {
                "query": query,
                "default_operator": operator,
            }
            if boosted:
                body["fields"] = boosted
            if query_type == "simple":
                return {"simple_query_string": with_options(body, "analyzer")}
            return {"query_string": with_options(body, "analyzer")}

        if query_type in ("phrase", "phrase_prefix"):
            if len(fields) == 1:
                inner = with_options({"query": query}, "analyzer")
                return {f"match_{query_type}": {fields[0]: inner}}
            body = {
                "query": query,
                "fields": boosted or ["*"],
                "type": query_type,
            }
            return {"multi_match": with_options(body, "analyzer")}

        if query_type == "prefix":
            if len(fields) == 1:
                inner = {"query": query, "operator": operator}
                return {
                    "match_bool_prefix": {
                        fields[0]: with_options(inner, "analyzer")
                    }
                }
            body = {
                "query": query,
                "fields": boosted or ["*"],
                "type": "bool_prefix",
                "operator": operator,
            }
            return {"multi_match": with_options(body, "analyzer")}

        if len(fields) == 1:
            inner = {"query": query, "operator": operator}
            return {
                "match": {
                    fields[0]: with_options(
                        inner, "fuzziness", "minimum_should_match", "analyzer"
                    )
                }
            }
        body = {
            "query": query,
            "fields": boosted or ["*"],
            "type": (
                query_type
                if query_type in ("best_fields", "most_fields", "cross_fields")
                else "best_fields"
            ),
            "operator": operator,
        }
        return {
            "multi_match": with_options(
                body, "fuzziness", "minimum_should_match", "analyzer"
            )
        }

    def clean_data(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, DataModel):
            return self.clean_data(value.to_dict())
        if isinstance(value, dict):
            return {k: self.clean_data(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.clean_data(v) for v in value]
        return value

    def _strip_reserved(self, value: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in value.items() if k not in RESERVED_FIELDS}


def _sort_payload(payload: Any) -> dict[str, Any]:
    if payload is None:
        return {"order": "asc"}
    if isinstance(payload, OrderByDirection):
        return {"order": payload.value}
    if isinstance(payload, str):
        return {"order": payload}
    if isinstance(payload, dict):
        return payload
    raise ParameterError(f"Sort payload {payload!r} not supported")


def _flatten(expr: Expression, cls: type) -> list[Expression]:
    if isinstance(expr, cls):
        return [
            *_flatten(expr.lexpr, cls),  # type: ignore[attr-defined]
            *_flatten(expr.rexpr, cls),  # type: ignore[attr-defined]
        ]
    return [expr]


def _like_to_wildcard(pattern: str) -> str:
    result = []
    for c in pattern:
        if c in ("*", "?", "\\"):
            result.append("\\" + c)
        elif c == "%":
            result.append("*")
        elif c == "_":
            result.append("?")
        else:
            result.append(c)
    return "".join(result)
