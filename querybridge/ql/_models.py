from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Union

from querybridge.core.data_model import DataModel


def _repr(value: Any) -> str:
    if isinstance(value, str):
        return repr(value)
    return str(value)


class FunctionNamespace:
    BUILTIN = "builtin"


class Function(DataModel):
    """Predicate function in a condition tree.

    Attributes:
        name: Function name, one of `QueryFunctionName`.
        args: Positional args, the field first.
        named_args: Keyword args.
        namespace: Function namespace.
    """

    namespace: str = FunctionNamespace.BUILTIN
    name: str
    args: list = []
    named_args: dict = dict()

    def __str__(self) -> str:
        args = [_repr(a) for a in self.args]
        args.extend(f"{k}={_repr(v)}" for k, v in self.named_args.items())
        return f"{self.name}({', '.join(args)})"


class Field(DataModel):
    """Document field, dotted path for nested fields."""

    path: str

    def __str__(self) -> str:
        return self.path


class Comparison(DataModel):
    """Binary comparison of a field and a value.

    The field is usually on the left. A comparison with the field
    on the right is read with the operator reversed.
    """

    lexpr: Expression
    op: ComparisonOp
    rexpr: Expression

    def __str__(self) -> str:
        return f"{_repr(self.lexpr)} {self.op.value} {_repr(self.rexpr)}"

    @staticmethod
    def reverse_op(op: ComparisonOp) -> ComparisonOp:
        return {
            ComparisonOp.GT: ComparisonOp.LT,
            ComparisonOp.GTE: ComparisonOp.LTE,
            ComparisonOp.LT: ComparisonOp.GT,
            ComparisonOp.LTE: ComparisonOp.GTE,
        }.get(op, op)


class ComparisonOp(str, Enum):
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    EQ = "="
    NEQ = "!="
    IN = "in"
    NIN = "not in"
    BETWEEN = "between"
    LIKE = "like"


class And(DataModel):
    lexpr: Expression
    rexpr: Expression

    def __str__(self) -> str:
        return f"({self.lexpr} and {self.rexpr})"


class Or(DataModel):
    lexpr: Expression
    rexpr: Expression

    def __str__(self) -> str:
        return f"({self.lexpr} or {self.rexpr})"


class Not(DataModel):
    expr: Expression

    def __str__(self) -> str:
        return f"not {self.expr}"


class UpdateOp(str, Enum):
    """Field update operation.

    Attributes:
        PUT:
            Set the field, creating it when absent.
        INCREMENT:
            Add to a numeric field. An absent field counts as 0.
    """

    PUT = "put"
    INCREMENT = "increment"


class UpdateOperation(DataModel):
    field: str
    op: UpdateOp
    args: list = []


class Update(DataModel):
    """Ordered list of field updates applied to a document."""

    operations: list[UpdateOperation] = []

    def put(self, field: str, value: Any) -> Update:
        self.operations.append(
            UpdateOperation(field=field, op=UpdateOp.PUT, args=[value])
        )
        return self

    def increment(self, field: str, value: int | float) -> Update:
        self.operations.append(
            UpdateOperation(field=field, op=UpdateOp.INCREMENT, args=[value])
        )
        return self


class OrderByDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class OrderByTerm(DataModel):
    field: str
    direction: OrderByDirection | None = None


class OrderBy(DataModel):
    """Sort terms, most significant first."""

    terms: list[OrderByTerm] = []

    def add_field(
        self,
        field: str,
        direction: OrderByDirection | None = None,
    ) -> OrderBy:
        self.terms.append(OrderByTerm(field=field, direction=direction))
        return self


Value = Union[str, int, float, bool, dict, list, datetime, date, None]
Expression = Union[Comparison, And, Or, Not, Function, Field, Value]
