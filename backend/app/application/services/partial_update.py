"""Explicit "leave alone" versus "set to value" for PATCH payloads.

A patch object holds either ``UNSET`` or the new value for every field, so an
explicit ``null`` in a request clears a column while an absent key leaves it
untouched.
"""

from dataclasses import fields
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel


class _Unset(Enum):
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset.UNSET
Unset = _Unset

PatchT = TypeVar("PatchT")


def is_set(value: Any) -> bool:
    return value is not UNSET


def patch_from_model(model: BaseModel, patch_cls: type[PatchT]) -> PatchT:
    """Build ``patch_cls`` from the fields the client actually sent."""
    sent = model.model_fields_set
    values = {
        field.name: getattr(model, field.name)
        for field in fields(patch_cls)
        if field.name in sent
    }
    return patch_cls(**values)


def assigned_fields(patch: Any) -> dict[str, Any]:
    return {
        field.name: getattr(patch, field.name)
        for field in fields(patch)
        if is_set(getattr(patch, field.name))
    }


def blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value
