# type: ignore

from datetime import datetime

import pytest

from querybridge.core.exceptions import ParameterError
from querybridge.ql import (
    Field,
    Function,
    OrderBy,
    OrderByDirection,
    OrderByTerm,
)
from querybridge.search import (
    AggregateFunction,
    Document,
    ParameterBuilder,
    QueryDescriptor,
    QueryOptions,
)

keyword_fields = {"category": "category.keyword", "status": "status"}


def builder(max_size: int = 10) -> ParameterBuilder:
    return ParameterBuilder(
        "posts", max_size=max_size, keyword_resolver=keyword_fields.get
    )


@pytest.mark.parametrize(
    "limit, expected",
    [
        (None, 10),
        (0, 10),
        (5, 5),
        (10, 10),
        (500, 10),
    ],
)
def test_size_is_clamped(limit, expected):
    params = builder().build_params(None, {"limit": limit})
    assert params["size"] == expected


def test_build_params():
    params = builder().build_params(
        [("status", "=", "active")],
        {
            "skip": 20,
            "limit": 5,
            "sort": {"category": "desc"},
            "highlights": ["title"],
            "min_score": 0.5,
            "track_total_hits": True,
        },
        "title, category",
    )
    assert params == {
        "index": "posts",
        "query": {"term": {"status": "active"}},
        "size": 5,
        "from_": 20,
        "sort": [{"category.keyword": {"order": "desc"}}],
        "source": ["title", "category"],
        "highlight": {"fields": {"title": {}}},
        "min_score": 0.5,
        "track_total_hits": True,
    }


def test_descriptor_options_and_columns():
    descriptor = (
        QueryDescriptor()
        .where("status", "=", "active")
        .order_by("views", "desc")
        .skip(2)
        .limit(3)
        .select("title")
    )
    params = builder().build_params(descriptor)
    assert params["sort"] == [{"views": {"order": "desc"}}]
    assert params["from_"] == 2
    assert params["size"] == 3
    assert params["source"] == ["title"]


@pytest.mark.parametrize(
    "sort, expected",
    [
        ("views", [{"views": {"order": "asc"}}]),
        (("views", "DESC"), [{"views": {"order": "desc"}}]),
        (
            [{"category": "asc"}, ("views", OrderByDirection.DESC)],
            [
                {"category.keyword": {"order": "asc"}},
                {"views": {"order": "desc"}},
            ],
        ),
        (
            OrderBy(
                terms=[
                    OrderByTerm(field="views", direction=OrderByDirection.DESC)
                ]
            ),
            [{"views": {"order": "desc"}}],
        ),
        ({"_id": "asc"}, []),
        (
            {"comments.created": {"order": "desc", "is_nested": True}},
            [
                {
                    "comments.created": {
                        "order": "desc",
                        "nested": {"path": "comments"},
                    }
                }
            ],
        ),
        (
            {"views": {"order": "asc", "missing": "_last", "mode": "max"}},
            [{"views": {"order": "asc", "mode": "max", "missing": "_last"}}],
        ),
        (
            {
                "location": {
                    "order": "asc",
                    "is_geo": True,
                    "pin": {"lat": 1.0, "lon": 2.0},
                    "type": "arc",
                }
            },
            [
                {
                    "_geo_distance": {
                        "location": {"lat": 1.0, "lon": 2.0},
                        "order": "asc",
                        "unit": "km",
                        "distance_type": "arc",
                    }
                }
            ],
        ),
    ],
)
def test_convert_sort(sort, expected):
    assert builder().convert_sort(sort) == expected


def test_id_sort_allowed_on_request():
    assert builder().convert_sort({"_id": "desc"}, allow_id=True) == [
        {"_id": {"order": "desc"}}
    ]


@pytest.mark.parametrize(
    "sort",
    [
        {"views": "sideways"},
        {"location": {"is_geo": True}},
        42,
    ],
)
def test_invalid_sort(sort):
    with pytest.raises(ParameterError):
        builder().convert_sort(sort)


@pytest.mark.parametrize(
    "function",
    [
        Function(name="match", args=[Field(path="title"), "x"]),
        Function(
            namespace="custom",
            name="is_defined",
            args=[Field(path="title")],
        ),
    ],
)
def test_unknown_function(function):
    with pytest.raises(ParameterError):
        builder().convert_func(function)


def test_exact_uses_keyword_field():
    assert builder().build_query([("category", "exact", "News")]) == {
        "term": {"category.keyword": "News"}
    }


def test_pit_params():
    params = builder().build_pit_params(
        None, {"sort": "views"}, None, "pit-1", [5, 10]
    )
    assert "index" not in params
    assert params["pit"] == {"id": "pit-1", "keep_alive": "5m"}
    assert params["sort"] == [
        {"views": {"order": "asc"}},
        {"_shard_doc": {"order": "asc"}},
    ]
    assert params["search_after"] == [5, 10]


@pytest.mark.parametrize(
    "search_options, fields, expected",
    [
        (
            None,
            ["title"],
            {"match": {"title": {"query": "hello", "operator": "or"}}},
        ),
        (
            {"match_mode": "and", "fuzziness": "AUTO"},
            {"title": 2.0, "body": 1.0},
            {
                "multi_match": {
                    "query": "hello",
                    "fields": ["title^2.0", "body^1.0"],
                    "type": "best_fields",
                    "operator": "and",
                    "fuzziness": "AUTO",
                }
            },
        ),
        (
            {"query_type": "phrase"},
            ["title"],
            {"match_phrase": {"title": {"query": "hello"}}},
        ),
        (
            {"query_type": "simple"},
            None,
            {
                "simple_query_string": {
                    "query": "hello",
                    "default_operator": "or",
                }
            },
        ),
    ],
)
def test_text_search(search_options, fields, expected):
    assert (
        builder().convert_text_search("hello", fields, search_options)
        == expected
    )


def test_search_params_combine_text_and_conditions():
    params = builder().build_search_params(
        "hello", None, [("status", "=", "active")], None, ["title"]
    )
    assert params["query"] == {
        "bool": {
            "must": [
                {"match": {"title": {"query": "hello", "operator": "or"}}},
                {"term": {"status": "active"}},
            ]
        }
    }


def test_search_params_without_conditions():
    params = builder().build_search_params({"match": {"title": "x"}})
    assert params["query"] == {"bool": {"must": [{"match": {"title": "x"}}]}}


def test_delete_params():
    params = builder().build_delete_params(
        [("views", "<", 10)], QueryOptions(limit=100, extra={"refresh": True})
    )
    assert params == {
        "index": "posts",
        "query": {"range": {"views": {"lt": 10}}},
        "max_docs": 100,
        "refresh": True,
    }


def test_write_params():
    created = datetime(2024, 5, 1, 12, 30)
    params = builder().build_write_params(
        {"_id": 7, "_meta": {"x": 1}, "title": "a", "created": created},
        refresh="wait_for",
    )
    assert params == {
        "index": "posts",
        "document": {"title": "a", "created": "2024-05-01T12:30:00"},
        "id": "7",
        "refresh": "wait_for",
    }


def test_bulk_params():
    params = builder().build_bulk_params(
        [{"_id": "1", "title": "a"}, Document(value={"title": "b"})]
    )
    assert params == {
        "operations": [
            {"index": {"_index": "posts", "_id": "1"}},
            {"title": "a"},
            {"index": {"_index": "posts"}},
            {"title": "b"},
        ]
    }


def test_metric_and_multiple_aggregations():
    b = builder()
    assert b.metric_aggregations(AggregateFunction.SUM, ["views"]) == {
        "sum_views": {"sum": {"field": "views"}}
    }
    assert b.multiple_aggregations(["min", "max", "matrix"], "views") == {
        "min_views": {"min": {"field": "views"}},
        "max_views": {"max": {"field": "views"}},
        "matrix_views": {"matrix_stats": {"fields": ["views"]}},
    }


def test_distinct_aggregations():
    aggs = builder(max_size=50).distinct_aggregations(
        ["category", "views"], ("category", "desc")
    )
    assert aggs == {
        "by_category": {
            "terms": {
                "field": "category.keyword",
                "size": 50,
                "order": {"_key": "desc"},
            },
            "aggs": {"by_views": {"terms": {"field": "views", "size": 50}}},
        }
    }
