# type: ignore

import json

import pytest

from querybridge.search import Document, QueryMetaData, Results
from querybridge.search._results import decode_error

engine_error = {
    "error": {
        "type": "search_phase_execution_exception",
        "reason": "all shards failed",
        "root_cause": [
            {"type": "query_shard_exception", "reason": "bad field"}
        ],
    },
    "status": 400,
}


@pytest.mark.parametrize(
    "message, body, expected_msg, expected_data",
    [
        ("plain failure", None, "plain failure", {}),
        ("failure: not json", None, "failure: not json", {}),
        (
            "ApiError(400)",
            engine_error,
            "ApiError(400): all shards failed - bad field",
            engine_error,
        ),
        (
            f"Search failed: {json.dumps(engine_error)}",
            None,
            "Search failed: all shards failed - bad field",
            engine_error,
        ),
        (
            "ApiError(500)",
            {"error": {"reason": "boom", "root_cause": []}},
            "ApiError(500): boom",
            {"error": {"reason": "boom", "root_cause": []}},
        ),
        ("ApiError(404)", {"found": False}, "ApiError(404)", {}),
    ],
)
def test_decode_error(message, body, expected_msg, expected_data):
    assert decode_error(message, body) == (expected_msg, expected_data)


def test_meta_from_engine_response():
    meta = QueryMetaData.from_meta(
        {
            "_index": "posts",
            "_id": "1",
            "_shards": {"total": 2},
            "took": 0,
            "result": "created",
            "created": 1,
            "_version": 3,
        }
    )
    assert meta.index == "posts"
    assert meta.id == "1"
    assert meta.took == 0
    assert meta.total == -1
    assert meta.shards == {"total": 2}
    assert meta.created == 1
    assert meta.modified == 0
    assert meta.extra == {"result": "created", "_version": 3}


def test_delete_count_becomes_deleted():
    meta = QueryMetaData.from_meta({"deleted": 3, "deleteCount": 2})
    assert meta.deleted == 2


def test_create():
    document = Document(id="5", value={"title": "a"})
    result = Results.create(
        document, {"took": 4}, {"index": "posts", "id": "5"}, "save"
    )
    assert result.is_successful()
    assert result.inserted_id == "5"
    assert result.meta.index == "posts"
    assert result.meta.dsl == {"index": "posts", "id": "5"}
    assert result.query_tag == "save"
    assert result.error is None
    assert result.error_code is None


def test_error_and_log_format():
    result = Results.create([], None, {"index": "posts"}, "find")
    result.set_error("ApiError(400)", 400, engine_error)
    assert not result.is_successful()
    assert result.error_code == 400
    logged = result.get_log_formatted_meta_data()
    assert logged["logged_query"] == "find"
    assert logged["logged_index"] == "posts"
    assert logged["logged_success"] is False
    assert logged["logged_error"]["msg"] == (
        "ApiError(400): all shards failed - bad field"
    )
    assert logged["logged_error_message"] == "ApiError(400)"
    assert all(key.startswith("logged_") for key in logged)


def test_counters():
    result = Results.create(
        [], {"modified": 2, "failed": 1, "error_bag": [{"_id": "x"}]}
    )
    assert result.modified_count == 2
    assert result.failed_count == 1
    assert result.created_count == 0
    assert result.get_meta_data_as_dict()["error_bag"] == [{"_id": "x"}]
