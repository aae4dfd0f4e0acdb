# =============================================================================
# core/models/common.py - Shared Model Bases
# =============================================================================
# The web client speaks camelCase JSON while the database uses snake_case.
# Request models inherit from CamelModel so Python code uses snake_case
# attributes and the wire format stays camelCase.
#
# StrictCamelModel additionally rejects unknown keys (telemetry, sponsor and
# alert trigger payloads are validated strictly).
# =============================================================================

from typing import Annotated

from pydantic import BaseModel, ConfigDict, StringConstraints
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for request/response bodies with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class StrictCamelModel(CamelModel):
    """CamelModel that forbids unknown fields."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# Trimmed, non-empty string
TrimmedStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def blank_to_none(value: str | None) -> str | None:
    """Trim a string and turn empty results into None."""
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None
