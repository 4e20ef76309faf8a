# type: ignore

import pytest

from querybridge.search import BucketDecoder, ResponseSanitizer

from ._fake_client import field_mapping, hit, search_response

aggregations = {
    "by_category": {
        "buckets": [
            {
                "key": "news",
                "doc_count": 3,
                "by_views": {
                    "buckets": [
                        {"key": 0, "doc_count": 1},
                        {"key": 5, "doc_count": 2},
                    ]
                },
            },
            {
                "key": "sport",
                "doc_count": 1,
                "by_views": {"buckets": [{"key": 7, "doc_count": 1}]},
            },
            {
                "key": "empty",
                "doc_count": 0,
                "by_views": {"buckets": []},
            },
        ]
    }
}


def test_decode_buckets():
    rows = BucketDecoder.decode(aggregations, ["category", "views"])
    assert rows == [
        {"category": "news", "views": 0},
        {"category": "news", "views": 5},
        {"category": "sport", "views": 7},
        {"category": "empty"},
    ]


def test_decode_buckets_with_doc_count():
    rows = BucketDecoder.decode(
        aggregations, ["category", "views"], include_doc_count=True
    )
    assert rows[0] == {
        "category": "news",
        "category_count": 3,
        "views": 0,
        "views_count": 1,
    }
    leaves = [row for row in rows if "views" in row]
    assert sum(row["views_count"] for row in leaves) == 4


def test_decode_strips_keyword_suffix():
    rows = BucketDecoder.decode(
        {"by_tag.keyword": {"buckets": [{"key": "a", "doc_count": 2}]}},
        ["tag.keyword"],
    )
    assert rows == [{"tag": "a"}]


def test_search():
    response = search_response(
        [
            hit(
                "1",
                {"title": "a"},
                highlight={
                    "title.keyword": ["<em>a</em>"],
                    "body": ["x"],
                },
            ),
            hit(
                "2",
                {"title": "b"},
                inner_hits={
                    "comments": {
                        "hits": {"hits": [{"_source": {"text": "hi"}}]}
                    }
                },
            ),
        ],
        total=12,
    )
    result = ResponseSanitizer.search(
        response, {"index": "posts"}, "find", {"request_id": "r1"}
    )
    assert result.meta.total == 12
    assert result.meta.took == 3
    assert result.meta.query == "find"
    assert result.meta.success
    first, second = result.data
    assert first.id == "1"
    assert first.value == {"title": "a"}
    assert first.meta.highlights == {"body": ["x"], "title": ["<em>a</em>"]}
    assert first.meta.extra == {"request_id": "r1"}
    assert first.meta.query["total"] == 12
    assert second.value["comments"] == [{"text": "hi"}]


def test_highlights_prefer_plain_field():
    assert ResponseSanitizer.highlights(
        {"title": ["plain"], "title.keyword": ["kw"]}
    ) == {"title": ["plain"]}


def test_pit_search_cursor():
    response = search_response(
        [
            hit("1", {}, sort=[1, 10]),
            hit("2", {}, sort=[2, 11]),
        ],
        pit_id="pit-2",
    )
    result = ResponseSanitizer.pit_search(response, {}, "pit_search")
    assert result.meta.sort == [2, 11]
    assert result.meta.cursor == {"pit_id": "pit-2", "search_after": [2, 11]}


@pytest.mark.parametrize(
    "source, soft_delete_column, found",
    [
        ({"title": "a"}, None, True),
        ({"title": "a", "deleted_at": None}, "deleted_at", True),
        ({"title": "a", "deleted_at": "2024-01-01"}, "deleted_at", False),
        ({"title": "a", "deleted_at": "2024-01-01"}, None, True),
    ],
)
def test_get(source, soft_delete_column, found):
    response = {
        "_index": "posts",
        "_id": "7",
        "found": True,
        "_source": source,
    }
    result = ResponseSanitizer.get(
        response, {"index": "posts", "id": "7"}, soft_delete_column, "getById"
    )
    if found:
        assert result.error is None
        assert result.data.id == "7"
        assert result.data.value["title"] == "a"
        if soft_delete_column:
            assert soft_delete_column not in result.data.value
    else:
        assert result.data == {}
        assert result.error_code == 404
        assert result.meta.id == "7"
        assert not result.is_successful()


def test_get_missing():
    result = ResponseSanitizer.get(None, {"id": 9}, None, "getById")
    assert result.error_code == 404
    assert result.error["msg"] == "9 not found"


def test_aggregations():
    single = search_response([], aggregations={"sum_views": {"value": 42}})
    assert ResponseSanitizer.aggregations(single, {}, "sum").data == 42
    several = search_response(
        [],
        aggregations={
            "min_views": {"value": None},
            "max_views": {"value": 9},
        },
    )
    assert ResponseSanitizer.aggregations(several, {}, "agg").data == {
        "min_views": 0,
        "max_views": 9,
    }


def test_raw_aggregations():
    response = search_response(
        [],
        aggregations={
            "by_status": {
                "buckets": [
                    {"key": "a", "doc_count": 2},
                    {"key": "b", "doc_count": 1},
                ]
            },
            "percentiles_views": {"values": {"50.0": 4.0}},
        },
    )
    result = ResponseSanitizer.raw_aggregations(response, {}, "aggregateRaw")
    assert result.data == {
        "by_status": [
            {"key": "a", "doc_count": 2},
            {"key": "b", "doc_count": 1},
        ],
        "percentiles_views": {"50.0": 4.0},
    }


def test_field_map():
    assert ResponseSanitizer.field_map(field_mapping) == {
        "category": "text",
        "category.keyword": "keyword",
        "status": "keyword",
        "views": "long",
    }
