"""
Record transforms.

``FieldCaseTransform`` upper- or lower-cases the string fields of a dict
record, the two processors of the people import sample.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from stepline_kernel.exceptions import TransformError

CASE_MODES = ("upper", "lower")


class FieldCaseTransform:
    """Returns a copy of the record with the chosen fields re-cased.

    ``fields=None`` re-cases every string value.  Non-string values of
    listed fields are left untouched.
    """

    def __init__(self, fields: Sequence[str] | None = None, mode: str = "upper"):
        if mode not in CASE_MODES:
            raise ValueError(f"mode must be one of {CASE_MODES}, got '{mode}'")
        self._fields = tuple(fields) if fields else None
        self._mode = mode

    def process(self, item: Any) -> dict[str, Any]:
        if not isinstance(item, Mapping):
            raise TransformError(
                f"Expected a mapping record, got {type(item).__name__}", item=item,
            )
        result = dict(item)
        for key in self._fields or tuple(result):
            value = result.get(key)
            if isinstance(value, str):
                result[key] = value.upper() if self._mode == "upper" else value.lower()
        return result

    def __repr__(self) -> str:
        return f"FieldCaseTransform(fields={self._fields!r}, mode={self._mode!r})"


def uppercase(fields: Sequence[str] | None = None) -> FieldCaseTransform:
    return FieldCaseTransform(fields, mode="upper")


def lowercase(fields: Sequence[str] | None = None) -> FieldCaseTransform:
    return FieldCaseTransform(fields, mode="lower")
