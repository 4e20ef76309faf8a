from __future__ import annotations

from typing import Any

from querybridge.core.exceptions import ParameterError
from querybridge.ql import (
    And,
    Comparison,
    ComparisonOp,
    Expression,
    Field,
    Not,
    Or,
    QueryFunction,
)

from ._models import BooleanConnector, Condition, ConditionOp, QueryDescriptor

OP_ALIASES = {
    "<>": ConditionOp.NEQ,
    "==": ConditionOp.EQ,
    "not_in": ConditionOp.NIN,
    "nin": ConditionOp.NIN,
    "not_between": ConditionOp.NOT_BETWEEN,
    "not_exists": ConditionOp.NOT_EXISTS,
    "not_like": ConditionOp.NOT_LIKE,
    "regexp": ConditionOp.REGEX,
}

COMPARISON_OPS = {
    ConditionOp.EQ: ComparisonOp.EQ,
    ConditionOp.NEQ: ComparisonOp.NEQ,
    ConditionOp.LT: ComparisonOp.LT,
    ConditionOp.LTE: ComparisonOp.LTE,
    ConditionOp.GT: ComparisonOp.GT,
    ConditionOp.GTE: ComparisonOp.GTE,
    ConditionOp.IN: ComparisonOp.IN,
    ConditionOp.NIN: ComparisonOp.NIN,
    ConditionOp.BETWEEN: ComparisonOp.BETWEEN,
    ConditionOp.LIKE: ComparisonOp.LIKE,
}

Conditions = Any
"""Condition list, mapping, QueryDescriptor or None."""


class ConditionParser:
    """Parses caller conditions into an expression tree.

    Conditions are AND-ed until an `or` connector starts
    a new bucket; the buckets are OR-ed together.
    """

    @staticmethod
    def normalize(conditions: Conditions) -> list[Condition]:
        if conditions is None:
            return []
        if isinstance(conditions, QueryDescriptor):
            return list(conditions.conditions)
        if isinstance(conditions, Condition):
            return [conditions]
        if isinstance(conditions, dict):
            return ConditionParser._from_mapping(conditions)
        if isinstance(conditions, tuple):
            return [ConditionParser._from_tuple(conditions)]
        if not isinstance(conditions, list):
            raise ParameterError(
                f"Conditions of type {type(conditions).__name__} "
                "not supported"
            )
        if conditions and isinstance(conditions[0], str):
            return [ConditionParser._from_tuple(tuple(conditions))]
        result: list[Condition] = []
        for item in conditions:
            if isinstance(item, Condition):
                result.append(item)
            elif isinstance(item, dict):
                result.extend(ConditionParser._from_mapping(item))
            elif isinstance(item, (tuple, list)):
                result.append(ConditionParser._from_tuple(tuple(item)))
            else:
                raise ParameterError(f"Condition {item!r} not supported")
        return result

    @staticmethod
    def parse(conditions: Conditions) -> Expression | None:
        return ConditionParser.to_expression(
            ConditionParser.normalize(conditions)
        )

    @staticmethod
    def to_expression(conditions: list[Condition]) -> Expression | None:
        if not conditions:
            return None
        if conditions[0].boolean in (
            BooleanConnector.OR,
            BooleanConnector.OR_NOT,
        ):
            raise ParameterError("Conditions cannot start with an OR")

        buckets: list[list[Expression]] = []
        for condition in conditions:
            if condition.boolean in (
                BooleanConnector.OR,
                BooleanConnector.OR_NOT,
            ) or not buckets:
                buckets.append([])
            expr = ConditionParser.convert_condition(condition)
            if expr is None:
                continue
            if condition.boolean in (
                BooleanConnector.AND_NOT,
                BooleanConnector.OR_NOT,
            ):
                expr = Not(expr=expr)
            buckets[-1].append(expr)

        exprs = [_chain(And, bucket) for bucket in buckets if bucket]
        if not exprs:
            return None
        return _chain(Or, exprs)

    @staticmethod
    def convert_condition(condition: Condition) -> Expression | None:
        op = condition.op
        value = condition.value
        if op == ConditionOp.GROUP:
            return ConditionParser.to_expression(condition.conditions or [])

        field = condition.field
        if not field:
            raise ParameterError(f"Condition {op.value!r} needs a field")

        if op == ConditionOp.HAS:
            return QueryFunction.has(
                relation=field,
                where=ConditionParser.to_expression(
                    condition.conditions or []
                ),
                op=condition.count_op,
                count=condition.count,
            )
        if value is None and op == ConditionOp.EQ:
            op = ConditionOp.NOT_EXISTS
        elif value is None and op == ConditionOp.NEQ:
            op = ConditionOp.EXISTS

        if op == ConditionOp.EXISTS:
            return QueryFunction.is_defined(field)
        if op == ConditionOp.NOT_EXISTS:
            return QueryFunction.is_not_defined(field)
        if op == ConditionOp.REGEX:
            return QueryFunction.regex(field, str(value))
        if op == ConditionOp.PHRASE:
            return QueryFunction.match_phrase(field, value)
        if op == ConditionOp.PHRASE_PREFIX:
            return QueryFunction.match_phrase_prefix(field, value)
        if op == ConditionOp.EXACT:
            return QueryFunction.exact(field, value)
        if op == ConditionOp.NOT_BETWEEN:
            return Not(
                expr=ConditionParser._comparison(
                    field, ConditionOp.BETWEEN, value
                )
            )
        if op == ConditionOp.NOT_LIKE:
            return Not(
                expr=ConditionParser._comparison(
                    field, ConditionOp.LIKE, value
                )
            )
        return ConditionParser._comparison(field, op, value)

    @staticmethod
    def _comparison(field: str, op: ConditionOp, value: Any) -> Comparison:
        if op in (ConditionOp.IN, ConditionOp.NIN):
            if not isinstance(value, (list, tuple, set)):
                raise ParameterError(
                    f"{op.value!r} on {field} expects a list of values"
                )
            value = list(value)
        if op == ConditionOp.BETWEEN:
            if not isinstance(value, (list, tuple)) or len(value) != 2:
                raise ParameterError(
                    f"between on {field} expects [lower, upper], "
                    f"got {value!r}"
                )
            value = list(value)
        return Comparison(
            lexpr=Field(path=field), op=COMPARISON_OPS[op], rexpr=value
        )

    @staticmethod
    def _from_tuple(item: tuple) -> Condition:
        if len(item) == 2:
            field, value = item
            op: Any = ConditionOp.EQ
            boolean: Any = BooleanConnector.AND
        elif len(item) == 3:
            field, op, value = item
            boolean = BooleanConnector.AND
        elif len(item) == 4:
            field, op, value, boolean = item
        else:
            raise ParameterError(
                f"Condition {item!r} must be (field, [op,] value[, boolean])"
            )
        return Condition(
            field=field,
            op=ConditionParser.parse_op(op),
            value=value,
            boolean=ConditionParser.parse_boolean(boolean),
        )

    @staticmethod
    def _from_mapping(mapping: dict[str, Any]) -> list[Condition]:
        result = []
        for field, value in mapping.items():
            op = (
                ConditionOp.IN
                if isinstance(value, (list, tuple, set))
                else ConditionOp.EQ
            )
            result.append(Condition(field=field, op=op, value=value))
        return result

    @staticmethod
    def parse_op(op: str | ConditionOp) -> ConditionOp:
        if isinstance(op, ConditionOp):
            return op
        key = " ".join(str(op).lower().split())
        if key in OP_ALIASES:
            return OP_ALIASES[key]
        try:
            return ConditionOp(key)
        except ValueError:
            raise ParameterError(f"Operator {op!r} not supported")

    @staticmethod
    def parse_boolean(
        boolean: str | BooleanConnector,
    ) -> BooleanConnector:
        if isinstance(boolean, BooleanConnector):
            return boolean
        key = " ".join(str(boolean).lower().replace("_", " ").split())
        try:
            return BooleanConnector(key)
        except ValueError:
            raise ParameterError(f"Boolean connector {boolean!r} invalid")


def _chain(cls: Any, exprs: list[Expression]) -> Expression:
    expr = exprs[0]
    for next in exprs[1:]:
        expr = cls(lexpr=expr, rexpr=next)
    return expr
