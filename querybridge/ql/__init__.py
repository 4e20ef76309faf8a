from ._functions import (
    QueryFunction,
    QueryFunctionName,
    TextSearchMatchMode,
    TextSearchQueryType,
)
from ._models import (
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
    OrderByTerm,
    Update,
    UpdateOp,
    UpdateOperation,
    Value,
)
from ._query_processor import QueryProcessor

__all__ = [
    "And",
    "Comparison",
    "ComparisonOp",
    "Expression",
    "Field",
    "Function",
    "FunctionNamespace",
    "Not",
    "Or",
    "OrderBy",
    "OrderByDirection",
    "OrderByTerm",
    "QueryFunction",
    "QueryFunctionName",
    "QueryProcessor",
    "TextSearchMatchMode",
    "TextSearchQueryType",
    "Update",
    "UpdateOp",
    "UpdateOperation",
    "Value",
]
