from __future__ import annotations

from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from ._parameter_builder import DEFAULT_MAX_SIZE

ENV_PREFIX = "QUERYBRIDGE_"


class BridgeConfig(BaseSettings):
    """Bridge configuration.

    Fields are read from `QUERYBRIDGE_<FIELD>` environment variables
    when not passed. `QUERYBRIDGE_HOSTS` is comma separated and
    `QUERYBRIDGE_NPARAMS` is JSON.

    Attributes:
        index:
            Index the bridge queries.
        index_prefix:
            Prefix joined to index names as `<prefix>_<index>`.
        max_size:
            Maximum result window.
        error_logging_index:
            Index that receives one diagnostic document per
            failed query. Diagnostics are off when not set.
        hosts:
            Elasticsearch hosts.
        api_key:
            Elasticsearch api key.
        basic_auth:
            Elasticsearch basic auth.
        nparams:
            Native parameters to Elasticsearch client.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        extra="ignore",
    )

    index: str | None = None
    index_prefix: str | None = None
    max_size: int = Field(default=DEFAULT_MAX_SIZE, gt=0)
    error_logging_index: str | None = None
    hosts: Annotated[str | list[str] | None, NoDecode] = None
    api_key: Annotated[str | list[str] | None, NoDecode] = None
    basic_auth: str | list[str] | None = None
    nparams: dict[str, Any] = dict()

    @field_validator(
        "index",
        "index_prefix",
        "error_logging_index",
        "api_key",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("hosts", mode="before")
    @classmethod
    def _split_hosts(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        split = [h.strip() for h in value.split(",") if h.strip()]
        if not split:
            return None
        return split[0] if len(split) == 1 else split

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX) -> BridgeConfig:
        """Read the configuration with a custom variable prefix."""
        return cls(_env_prefix=prefix)

    @property
    def effective_index(self) -> str | None:
        return prefixed(self.index, self.index_prefix)

    def get_client_params(self) -> dict[str, Any]:
        def _add_if_not_none(key, value):
            return {key: value} if value is not None else {}

        def _convert_if_list(value):
            return tuple(value) if isinstance(value, list) else value

        args = {
            "hosts": self.hosts,
            **_add_if_not_none("api_key", _convert_if_list(self.api_key)),
            **_add_if_not_none(
                "basic_auth", _convert_if_list(self.basic_auth)
            ),
        }
        args.update(self.nparams)
        return args


def prefixed(index: str | None, prefix: str | None) -> str | None:
    if not index or not prefix:
        return index
    if index.startswith(f"{prefix}_"):
        return index
    return f"{prefix}_{index}"
