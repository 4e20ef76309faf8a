from .search import (
    Bridge,
    BridgeConfig,
    Document,
    QueryDescriptor,
    QueryError,
    QueryOptions,
    Results,
)

__all__ = [
    "Bridge",
    "BridgeConfig",
    "Document",
    "QueryDescriptor",
    "QueryError",
    "QueryOptions",
    "Results",
]
