from querybridge.core.exceptions import (
    BadRequestError,
    ParameterError,
    QueryError,
)
from querybridge.ql import QueryFunction

from ._condition_parser import ConditionParser
from ._config import BridgeConfig
from ._index_interpreter import IndexInterpreter
from ._models import (
    AggregateFunction,
    BooleanConnector,
    BulkError,
    BulkResult,
    Condition,
    ConditionOp,
    Document,
    DocumentMeta,
    QueryDescriptor,
    QueryOptions,
)
from ._parameter_builder import ParameterBuilder
from ._results import QueryMetaData, Results
from ._sanitizer import BucketDecoder, ResponseSanitizer
from .bridge import Bridge

__all__ = [
    "AggregateFunction",
    "BooleanConnector",
    "Bridge",
    "BridgeConfig",
    "BucketDecoder",
    "BulkError",
    "BulkResult",
    "Condition",
    "ConditionOp",
    "ConditionParser",
    "Document",
    "DocumentMeta",
    "IndexInterpreter",
    "ParameterBuilder",
    "QueryDescriptor",
    "QueryFunction",
    "QueryMetaData",
    "QueryOptions",
    "ResponseSanitizer",
    "Results",
    "BadRequestError",
    "ParameterError",
    "QueryError",
]
