__all__ = ["DataModel"]

from typing import Any, Self

from pydantic import BaseModel, ConfigDict


class DataModel(BaseModel):
    """Base of the bridge value objects.

    Unknown keys are dropped on validation.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="ignore")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_dict(cls, obj: dict | None) -> Self:
        return cls.model_validate(obj)
