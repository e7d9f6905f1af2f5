"""Shared validation helpers for server settings."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


def parse_string_list(value: str | list[str], *, allow_empty: bool = False) -> list[str]:
    """Parse a list of strings given either as a list, a JSON array, or comma-separated text.

    Blank input is rejected. Empty lists are rejected unless allow_empty is set.
    """
    if isinstance(value, list):
        result = value
    else:
        stripped = value.strip()
        if not stripped:
            if allow_empty:
                return []
            raise ValueError("String list value must not be empty")
        if stripped.startswith("["):
            try:
                result = json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON array: {e}") from e
            if not isinstance(result, list) or not all(isinstance(item, str) for item in result):
                raise ValueError("JSON value must be an array of strings")
        else:
            result = [item.strip() for item in stripped.split(",") if item.strip()]

    if not allow_empty and not result:
        raise ValueError("String list value must not be empty")
    return result


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env source that hands list-typed string fields to their validators undecoded.

    pydantic-settings JSON-decodes complex fields before validators run, which
    would reject the comma-separated form accepted by parse_string_list.
    """

    string_list_fields: frozenset[str] = frozenset({"cors_origins"})

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in self.string_list_fields and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
