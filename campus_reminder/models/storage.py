from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StorageModel(BaseModel):
    """
    Base for models mapped to a table.

    Python fields are snake_case, table columns are their camelCase alias.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @classmethod
    def column(cls, field: str) -> str:
        """
        Column name of a field.
        """
        return cls.model_fields[field].alias or field


class PatchModel(StorageModel):
    """
    Partial update of a row.

    Every field is optional, `None` means "leave unchanged".
    """

    def to_columns(self) -> dict[str, Any]:
        """
        Columns to update, with their storage value.

        Only fields declared on the model are considered, fields set to `None` are skipped.
        """
        return {
            self.column(field): self._to_storage(field, value)
            for field, value in self.model_dump(
                exclude_none=True,
                mode="json",  # Enums as their value
            ).items()
        }

    def _to_storage(self, field: str, value: Any) -> Any:  # noqa: ARG002
        """
        Convert a field value to its storage representation.

        Override to translate types the engine does not support natively.
        """
        return value
