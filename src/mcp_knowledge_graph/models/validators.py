"""Shared Pydantic types reused by the graph and tool input models."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BeforeValidator


def as_string_list(v: Any) -> Any:
    """Wrap a bare string in a list; ``None`` becomes ``[]``.

    Anything else is passed through for the list validator to check. Unlike
    comma-separated tag input, a string is never split: observation text
    may legitimately contain commas.
    """
    if v is None:
        return []
    if isinstance(v, str):
        return [v]
    return v


StringList = Annotated[list[str], BeforeValidator(as_string_list)]
"""Accepts ``str | list[str] | None`` and always yields ``list[str]``."""
