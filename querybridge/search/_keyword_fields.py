from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

KEYWORD_TYPE = "keyword"


class KeywordFieldCache:
    """Lazy field to keyword-field lookup.

    The field mapping is loaded on first use and kept until
    `invalidate` is called. Mapping changes made to the index
    afterwards are not observed.

    Args:
        loader:
            Returns the flattened field mapping of the index,
            field name to type, sub-fields as `field.sub`.
    """

    def __init__(self, loader: Callable[[], dict[str, str]]) -> None:
        self._loader = loader
        self._keyword_fields: set[str] | None = None

    @property
    def loaded(self) -> bool:
        return self._keyword_fields is not None

    def keyword_fields(self) -> set[str]:
        if self._keyword_fields is None:
            mapping = self._loader()
            self._keyword_fields = {
                field
                for field, type in mapping.items()
                if type == KEYWORD_TYPE
            }
            logger.debug(
                "Loaded %d keyword fields", len(self._keyword_fields)
            )
        return self._keyword_fields

    def resolve(self, field: str) -> str | None:
        """Keyword variant of a field.

        Returns:
            The field itself when it is a keyword, `field.keyword`
            when that sub-field is a keyword, None otherwise.
        """
        keyword_fields = self.keyword_fields()
        if field in keyword_fields:
            return field
        if f"{field}.keyword" in keyword_fields:
            return f"{field}.keyword"
        return None

    def invalidate(self) -> None:
        self._keyword_fields = None
