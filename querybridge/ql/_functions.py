from typing import Any, Literal

from ._models import ComparisonOp, Expression, Field, Function

TextSearchQueryType = Literal[
    "simple",
    "full",
    "phrase",
    "phrase_prefix",
    "prefix",
    "best_fields",
    "most_fields",
    "cross_fields",
]

TextSearchMatchMode = Literal[
    "and",
    "or",
]


class QueryFunctionName:
    IS_DEFINED = "is_defined"
    IS_NOT_DEFINED = "is_not_defined"

    MATCH_PHRASE = "match_phrase"
    MATCH_PHRASE_PREFIX = "match_phrase_prefix"
    EXACT = "exact"
    REGEX = "regex"

    HAS = "has"
    TEXT_SEARCH = "text_search"


class QueryFunction:
    @staticmethod
    def is_defined(field: str) -> Function:
        return Function(
            name=QueryFunctionName.IS_DEFINED, args=[Field(path=field)]
        )

    @staticmethod
    def is_not_defined(field: str) -> Function:
        return Function(
            name=QueryFunctionName.IS_NOT_DEFINED, args=[Field(path=field)]
        )

    @staticmethod
    def match_phrase(field: str, value: Any) -> Function:
        return Function(
            name=QueryFunctionName.MATCH_PHRASE,
            args=[Field(path=field), value],
        )

    @staticmethod
    def match_phrase_prefix(field: str, value: Any) -> Function:
        return Function(
            name=QueryFunctionName.MATCH_PHRASE_PREFIX,
            args=[Field(path=field), value],
        )

    @staticmethod
    def exact(field: str, value: Any) -> Function:
        return Function(
            name=QueryFunctionName.EXACT, args=[Field(path=field), value]
        )

    @staticmethod
    def regex(field: str, expression: str) -> Function:
        return Function(
            name=QueryFunctionName.REGEX,
            args=[Field(path=field), expression],
        )

    @staticmethod
    def has(
        relation: str,
        where: Expression | None = None,
        op: ComparisonOp = ComparisonOp.GTE,
        count: int = 1,
    ) -> Function:
        """Relation count predicate.

        Args:
            relation:
                Nested relation path.
            where:
                Condition on the related documents.
            op:
                Comparison between the number of matching
                related documents and `count`.
            count:
                Threshold.
        """
        return Function(
            name=QueryFunctionName.HAS,
            args=[Field(path=relation)],
            named_args={"where": where, "op": op, "count": count},
        )

    @staticmethod
    def text_search(
        query: str | None = None,
        fields: list[str] | None = None,
        match_mode: TextSearchMatchMode | None = None,
        query_type: TextSearchQueryType | None = None,
        fuzziness: int | str | None = None,
        minimum_should_match: int | str | None = None,
        analyzer: str | None = None,
        boost: dict[str, float] | None = None,
    ) -> Function:
        named_args: dict[str, Any] = {}
        for key, value in {
            "query": query,
            "fields": fields,
            "match_mode": match_mode,
            "query_type": query_type,
            "fuzziness": fuzziness,
            "minimum_should_match": minimum_should_match,
            "analyzer": analyzer,
            "boost": boost,
        }.items():
            if value is not None:
                named_args[key] = value
        return Function(
            name=QueryFunctionName.TEXT_SEARCH, named_args=named_args
        )
