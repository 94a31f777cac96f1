"""
Pydantic schemas for the SOW prefix endpoints.

WHY: The prefix pattern is checked by the numbering service, not here,
so an invalid candidate surfaces as InvalidPrefixError with its rule
instead of a generic field error.
"""

from pydantic import BaseModel, ConfigDict, Field


class SowPrefixUpdate(BaseModel):
    prefix: str = Field(..., description="1-10 ASCII digits")

    model_config = ConfigDict(json_schema_extra={"example": {"prefix": "031"}})


class SowPrefixResponse(BaseModel):
    """
    Current prefix state.

    `locked` becomes true once a numbered proposal has used the prefix;
    after that the prefix can no longer change.
    """

    prefix: str | None
    locked: bool
    next_sow_number: str = Field(..., description="Number the next proposal will receive")
