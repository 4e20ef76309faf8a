from __future__ import annotations

from typing import Any, Mapping

from ._models import Document, DocumentMeta
from ._results import Results

KEYWORD_SUFFIX = ".keyword"


class ResponseSanitizer:
    """Normalizes engine responses into `Results`."""

    @staticmethod
    def search(
        response: Mapping[str, Any],
        params: dict[str, Any],
        query_tag: str,
        stashed_meta: dict[str, Any] | None = None,
    ) -> Results:
        meta = ResponseSanitizer.search_meta(response)
        data = [
            ResponseSanitizer.hit(hit, meta, stashed_meta)
            for hit in _hits(response)
        ]
        return Results.create(data, meta, params, query_tag)

    @staticmethod
    def pit_search(
        response: Mapping[str, Any],
        params: dict[str, Any],
        query_tag: str,
    ) -> Results:
        meta = ResponseSanitizer.search_meta(response)
        data: list[Document] = []
        sort = None
        for hit in _hits(response):
            data.append(ResponseSanitizer.hit(hit))
            if hit.get("sort"):
                sort = hit["sort"]
        meta["sort"] = sort
        meta["cursor"] = {
            k: v
            for k, v in {
                "pit_id": response.get("pit_id"),
                "search_after": sort,
            }.items()
            if v is not None
        }
        return Results.create(data, meta, params, query_tag)

    @staticmethod
    def get(
        response: Mapping[str, Any] | None,
        params: dict[str, Any],
        soft_delete_column: str | None,
        query_tag: str,
    ) -> Results:
        id = params.get("id")
        id = str(id) if id is not None else None
        source = dict((response or {}).get("_source") or {})
        soft_deleted = bool(
            soft_delete_column and source.get(soft_delete_column)
        )
        if not response or soft_deleted:
            result = Results.create({}, {"_id": id}, params, query_tag)
            result.set_error(f"{id} not found", 404)
            return result

        if soft_delete_column:
            source.pop(soft_delete_column, None)
        index = response.get("_index")
        document = Document(
            id=id,
            index=index,
            value=source,
            meta=DocumentMeta(index=index, id=id),
        )
        return Results.create(document, None, params, query_tag)

    @staticmethod
    def aggregations(
        response: Mapping[str, Any],
        params: dict[str, Any],
        query_tag: str,
    ) -> Results:
        """Metric aggregation values.

        A single aggregation yields its value, several yield
        a name to value mapping. Missing values are 0.
        """
        meta = ResponseSanitizer.search_meta(response)
        aggs = response.get("aggregations") or {}
        data: Any
        if len(aggs) == 1:
            data = _agg_value(next(iter(aggs.values())))
        else:
            data = {name: _agg_value(agg) for name, agg in aggs.items()}
        return Results.create(data, meta, params, query_tag)

    @staticmethod
    def raw_aggregations(
        response: Mapping[str, Any],
        params: dict[str, Any],
        query_tag: str,
    ) -> Results:
        meta = ResponseSanitizer.search_meta(response)
        data = {
            key: ResponseSanitizer.format_aggs(values)
            for key, values in (response.get("aggregations") or {}).items()
        }
        return Results.create(data, meta, params, query_tag)

    @staticmethod
    def format_aggs(values: Any) -> Any:
        if isinstance(values, list):
            return [ResponseSanitizer.format_aggs(v) for v in values]
        if not isinstance(values, Mapping):
            return values
        for key in ("buckets", "values"):
            if key in values:
                return ResponseSanitizer.format_aggs(values[key])
        return {k: ResponseSanitizer.format_aggs(v) for k, v in values.items()}

    @staticmethod
    def search_meta(response: Mapping[str, Any]) -> dict[str, Any]:
        hits = response.get("hits") or {}
        total = hits.get("total")
        if isinstance(total, Mapping):
            total = total.get("value")
        return {
            "took": response.get("took", 0),
            "timed_out": response.get("timed_out", False),
            "total": total or 0,
            "max_score": hits.get("max_score"),
            "shards": dict(response.get("_shards") or {}),
        }

    @staticmethod
    def hit(
        hit: Mapping[str, Any],
        query_meta: dict[str, Any] | None = None,
        stashed_meta: dict[str, Any] | None = None,
    ) -> Document:
        value = dict(hit.get("_source") or {})
        for key, inner in (hit.get("inner_hits") or {}).items():
            value[key] = ResponseSanitizer.inner_hits(inner)
        highlights = None
        if hit.get("highlight"):
            highlights = ResponseSanitizer.highlights(hit["highlight"])
        meta = DocumentMeta(
            index=hit.get("_index"),
            id=hit.get("_id"),
            score=hit.get("_score") or None,
            sort=hit.get("sort") or None,
            highlights=highlights,
            query=dict(query_meta) if query_meta is not None else None,
            extra=dict(stashed_meta or {}),
        )
        return Document(
            id=hit.get("_id"),
            index=hit.get("_index"),
            value=value,
            meta=meta,
        )

    @staticmethod
    def highlights(highlights: Mapping[str, Any]) -> dict[str, Any]:
        """Collapse `field.keyword` highlights onto `field`.

        A highlight of `field` itself wins over its keyword variant.
        """
        result = dict(highlights)
        for field, fragments in highlights.items():
            if KEYWORD_SUFFIX not in field:
                continue
            clean = field.replace(KEYWORD_SUFFIX, "")
            del result[field]
            if clean not in highlights:
                result[clean] = fragments
        return result

    @staticmethod
    def inner_hits(inner_hit: Mapping[str, Any]) -> list[dict[str, Any]]:
        return [
            dict(inner.get("_source") or {})
            for inner in (inner_hit.get("hits") or {}).get("hits") or []
        ]

    @staticmethod
    def field_map(mapping: Mapping[str, Any]) -> dict[str, str]:
        """Flatten a field mapping response to field name -> type.

        Multi-fields are listed as `field.sub`. Only the first
        index of the response is read.
        """
        fields: dict[str, str] = {}
        if not mapping:
            return fields
        first = next(iter(mapping.values())) or {}
        for key, item in (first.get("mappings") or {}).items():
            for details in (item.get("mapping") or {}).values():
                if "type" in details:
                    fields[key] = details["type"]
                for sub, sub_details in (details.get("fields") or {}).items():
                    if "type" in sub_details:
                        fields[f"{key}.{sub}"] = sub_details["type"]
        return dict(sorted(fields.items()))


class BucketDecoder:
    """Flattens nested `by_<column>` terms buckets into rows.

    Each row holds one value per column, named without the
    `.keyword` suffix, plus `<column>_count` doc counts when
    requested. A bucket without nested rows is a row of its own.
    """

    @staticmethod
    def decode(
        aggregations: Mapping[str, Any],
        columns: list[str],
        include_doc_count: bool = False,
    ) -> list[dict[str, Any]]:
        if not columns:
            return []
        return BucketDecoder._decode(
            aggregations, columns, 0, include_doc_count, {}
        )

    @staticmethod
    def _decode(
        aggregations: Mapping[str, Any],
        columns: list[str],
        level: int,
        include_doc_count: bool,
        current: dict[str, Any],
    ) -> list[dict[str, Any]]:
        column = columns[level]
        name = column.replace(KEYWORD_SUFFIX, "")
        agg = aggregations.get(f"by_{column}") or {}
        rows: list[dict[str, Any]] = []
        for bucket in agg.get("buckets") or []:
            row = dict(current)
            row[name] = bucket.get("key")
            if include_doc_count:
                row[f"{name}_count"] = bucket.get("doc_count", 0)
            nested: list[dict[str, Any]] = []
            if level + 1 < len(columns):
                nested = BucketDecoder._decode(
                    bucket, columns, level + 1, include_doc_count, row
                )
            if nested:
                rows.extend(nested)
            else:
                rows.append(row)
        return rows


def _hits(response: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    return (response.get("hits") or {}).get("hits") or []


def _agg_value(agg: Any) -> Any:
    if isinstance(agg, Mapping):
        value = agg.get("value")
        return 0 if value is None else value
    return 0
