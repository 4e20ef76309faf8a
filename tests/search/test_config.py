# type: ignore

import pytest
from pydantic import ValidationError

from querybridge.core.exceptions import ParameterError
from querybridge.search import BridgeConfig, IndexInterpreter
from querybridge.search._config import prefixed
from querybridge.search._keyword_fields import KeywordFieldCache


def test_from_env(monkeypatch):
    for name, value in {
        "QUERYBRIDGE_INDEX": "posts",
        "QUERYBRIDGE_INDEX_PREFIX": "dev",
        "QUERYBRIDGE_MAX_SIZE": "250",
        "QUERYBRIDGE_ERROR_LOGGING_INDEX": "query_errors",
        "QUERYBRIDGE_HOSTS": "http://a:9200, http://b:9200",
        "QUERYBRIDGE_API_KEY": " ",
        "QUERYBRIDGE_NPARAMS": '{"request_timeout": 5}',
        "OTHER_INDEX": "ignored",
    }.items():
        monkeypatch.setenv(name, value)
    config = BridgeConfig()
    assert config.index == "posts"
    assert config.effective_index == "dev_posts"
    assert config.max_size == 250
    assert config.error_logging_index == "query_errors"
    assert config.hosts == ["http://a:9200", "http://b:9200"]
    assert config.api_key is None
    assert config.nparams == {"request_timeout": 5}


def test_from_env_single_host(monkeypatch):
    monkeypatch.setenv("QUERYBRIDGE_HOSTS", "http://a:9200")
    assert BridgeConfig().hosts == "http://a:9200"


def test_from_env_custom_prefix(monkeypatch):
    monkeypatch.setenv("QB_INDEX", "x")
    config = BridgeConfig.from_env(prefix="QB_")
    assert config.index == "x"
    assert config.max_size == 10
    assert config.effective_index == "x"


def test_arguments_override_env(monkeypatch):
    monkeypatch.setenv("QUERYBRIDGE_INDEX", "posts")
    assert BridgeConfig(index="users").index == "users"


@pytest.mark.parametrize("max_size", ["many", "0", "-5"])
def test_from_env_bad_max_size(monkeypatch, max_size):
    monkeypatch.setenv("QUERYBRIDGE_MAX_SIZE", max_size)
    with pytest.raises(ValidationError):
        BridgeConfig()


def test_client_params():
    config = BridgeConfig(
        hosts="http://localhost:9200",
        basic_auth=["elastic", "secret"],
        nparams={"request_timeout": 5},
    )
    assert config.get_client_params() == {
        "hosts": "http://localhost:9200",
        "basic_auth": ("elastic", "secret"),
        "request_timeout": 5,
    }


@pytest.mark.parametrize(
    "index, prefix, expected",
    [
        ("posts", None, "posts"),
        ("posts", "app", "app_posts"),
        ("app_posts", "app", "app_posts"),
        (None, "app", None),
    ],
)
def test_prefixed(index, prefix, expected):
    assert prefixed(index, prefix) == expected


def test_index_map():
    params = IndexInterpreter.build_index_map(
        "posts",
        {
            "map": {"dynamic": "strict"},
            "properties": [
                {"field": "title", "type": "text", "searchAnalyzer": "std"},
                {"field": "title", "type": "keyword"},
                {"field": "title", "type": "search_as_you_type"},
                {"field": "views", "type": "long"},
            ],
        },
    )
    assert params == {
        "index": "posts",
        "mappings": {
            "dynamic": "strict",
            "properties": {
                "title": {
                    "type": "text",
                    "search_analyzer": "std",
                    "fields": {
                        "keyword": {"type": "keyword"},
                        "search_as_you_type": {"type": "search_as_you_type"},
                    },
                },
                "views": {"type": "long"},
            },
        },
    }


@pytest.mark.parametrize(
    "properties",
    [
        [{"type": "text"}],
        [{"field": "a", "type": "text"}, {"field": "a"}],
    ],
)
def test_invalid_properties(properties):
    with pytest.raises(ParameterError):
        IndexInterpreter.build_properties(properties)


def test_analyzer_settings_need_name():
    with pytest.raises(ParameterError):
        IndexInterpreter.build_analyzer_settings(
            "posts", {"analysis": [{"config": "analyzer"}]}
        )


def test_keyword_field_cache():
    loads = []

    def loader():
        loads.append(1)
        return {
            "status": "keyword",
            "title": "text",
            "title.keyword": "keyword",
            "views": "long",
        }

    cache = KeywordFieldCache(loader)
    assert not cache.loaded
    assert cache.resolve("status") == "status"
    assert cache.resolve("title") == "title.keyword"
    assert cache.resolve("views") is None
    assert cache.loaded
    assert len(loads) == 1
    cache.invalidate()
    assert not cache.loaded
    cache.resolve("title")
    assert len(loads) == 2
