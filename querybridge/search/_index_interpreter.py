from __future__ import annotations

import re
from typing import Any

from querybridge.core.exceptions import ParameterError


class IndexInterpreter:
    """Builds index administration requests from declarative settings.

    The settings structure::

        {
            "settings": {"number_of_shards": 1},
            "map": {"dynamic": "strict"},
            "properties": [
                {"field": "title", "type": "text"},
                {"field": "title", "type": "keyword", "ignoreAbove": 256},
            ],
            "analysis": [
                {"config": "analyzer", "name": "folded", "tokenizer": "std"},
            ],
        }

    A field declared more than once gets the later declarations as
    multi-fields keyed by their type. Property keys are snake-cased.
    """

    @staticmethod
    def build_index_map(
        index: str | None, raw: dict[str, Any]
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if index:
            params["index"] = index
        if raw.get("settings"):
            params["settings"] = raw["settings"]
        mappings: dict[str, Any] = dict(raw.get("map") or {})
        properties = IndexInterpreter.build_properties(
            raw.get("properties") or []
        )
        if properties:
            mappings["properties"] = properties
        if mappings:
            params["mappings"] = mappings
        return params

    @staticmethod
    def build_mapping_update(
        index: str, raw: dict[str, Any]
    ) -> dict[str, Any]:
        properties = IndexInterpreter.build_properties(
            raw.get("properties") or []
        )
        if not properties:
            raise ParameterError("Mapping update needs properties")
        return {
            "index": index,
            "properties": properties,
            "source": {"enabled": True},
        }

    @staticmethod
    def build_properties(props: list[dict[str, Any]]) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for prop in props:
            prop = dict(prop)
            field = prop.pop("field", None)
            if not field:
                raise ParameterError(f"Property {prop!r} needs a field")
            if field in properties:
                type = prop.get("type")
                if not type:
                    raise ParameterError(
                        f"Repeated property {field} needs a type"
                    )
                sub = properties[field].setdefault("fields", {})
                sub[type] = {_snake(k): v for k, v in prop.items()}
            else:
                properties[field] = {_snake(k): v for k, v in prop.items()}
        return properties

    @staticmethod
    def build_analyzer_settings(
        index: str, raw: dict[str, Any]
    ) -> dict[str, Any]:
        analysis: dict[str, Any] = {}
        for setting in raw.get("analysis") or []:
            setting = dict(setting)
            config = setting.pop("config", None)
            name = setting.pop("name", None)
            if not config or not name:
                raise ParameterError(
                    f"Analysis entry {setting!r} needs a config and a name"
                )
            if setting:
                analysis.setdefault(config, {}).setdefault(name, {}).update(
                    setting
                )
        return {"index": index, "settings": {"analysis": analysis}}

    @staticmethod
    def cat_indices(
        data: list[dict[str, Any]], all: bool = False
    ) -> list[dict[str, Any]]:
        if all:
            return list(data)
        return [
            item
            for item in data
            if not str(item.get("index", "")).startswith(".")
        ]


def _snake(key: str) -> str:
    key = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key)
    return re.sub(r"[\s\-]+", "_", key).lower()
