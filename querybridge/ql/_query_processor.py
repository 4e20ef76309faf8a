import copy
from typing import Any

from querybridge.core.exceptions import BadRequestError

from ._models import Update, UpdateOp, UpdateOperation


class QueryProcessor:
    @staticmethod
    def update_item(item: dict[str, Any], update: Update) -> dict[str, Any]:
        item_copy = copy.deepcopy(item)
        for operation in update.operations:
            QueryProcessor.update_field(item_copy, operation)
        return item_copy

    @staticmethod
    def update_field(item: dict[str, Any], operation: UpdateOperation):
        splits = operation.field.split(".")
        op = operation.op
        value = operation.args[0] if operation.args else None
        current_item = item
        for split in splits[:-1]:
            if not isinstance(current_item.get(split), dict):
                current_item[split] = dict()
            current_item = current_item[split]

        split = splits[-1]
        if op == UpdateOp.PUT:
            current_item[split] = value
        elif op == UpdateOp.INCREMENT:
            current = current_item.get(split)
            if current is None:
                current = 0
            if not isinstance(current, (int, float)) or isinstance(
                current, bool
            ):
                raise BadRequestError(
                    f"Increment field {operation.field} should be a number"
                )
            current_item[split] = current + value
        else:
            raise BadRequestError(f"Update operation {op} not supported")
