# type: ignore

from typing import Any

from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import ApiError


def api_error(
    status: int,
    body: dict | None = None,
    message: str = "api_error",
) -> ApiError:
    meta = ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    return ApiError(message, meta=meta, body=body or {})


class FakeEndpoint:
    def __init__(self, client: "FakeElasticsearch", name: str):
        self.client = client
        self.name = name

    def __call__(self, **kwargs):
        self.client.calls.append((self.name, kwargs))
        queue = self.client.responses.get(self.name)
        if not queue:
            return {}
        # The last queued response is sticky.
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(**kwargs)
        return response


class FakeNamespace:
    def __init__(self, client: "FakeElasticsearch", prefix: str):
        self._client = client
        self._prefix = prefix

    def __getattr__(self, name: str) -> FakeEndpoint:
        if name.startswith("_"):
            raise AttributeError(name)
        return FakeEndpoint(self._client, f"{self._prefix}{name}")


class FakeElasticsearch(FakeNamespace):
    """Records calls and answers with queued responses.

    A queued exception is raised, a callable is called with the
    request keyword arguments.
    """

    def __init__(self):
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.responses: dict[str, list[Any]] = {}
        super().__init__(self, "")
        self.indices = FakeNamespace(self, "indices.")
        self.cat = FakeNamespace(self, "cat.")

    def respond(self, name: str, *responses: Any) -> "FakeElasticsearch":
        self.responses[name] = list(responses)
        return self

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for call, kwargs in self.calls if call == name]


def search_response(
    hits: list[dict[str, Any]],
    total: int | None = None,
    aggregations: dict[str, Any] | None = None,
    pit_id: str | None = None,
) -> dict[str, Any]:
    response = {
        "took": 3,
        "timed_out": False,
        "_shards": {"total": 1, "successful": 1, "skipped": 0, "failed": 0},
        "hits": {
            "total": {
                "value": len(hits) if total is None else total,
                "relation": "eq",
            },
            "max_score": 1.0 if hits else None,
            "hits": hits,
        },
    }
    if aggregations is not None:
        response["aggregations"] = aggregations
    if pit_id is not None:
        response["pit_id"] = pit_id
    return response


def hit(id: str, source: dict[str, Any], **extra) -> dict[str, Any]:
    return {
        "_index": extra.pop("index", "posts"),
        "_id": id,
        "_score": 1.0,
        "_source": source,
        **extra,
    }


field_mapping = {
    "posts": {
        "mappings": {
            "category": {
                "full_name": "category",
                "mapping": {
                    "category": {
                        "type": "text",
                        "fields": {
                            "keyword": {
                                "type": "keyword",
                                "ignore_above": 256,
                            }
                        },
                    }
                },
            },
            "status": {
                "full_name": "status",
                "mapping": {"status": {"type": "keyword"}},
            },
            "views": {
                "full_name": "views",
                "mapping": {"views": {"type": "long"}},
            },
        }
    }
}
