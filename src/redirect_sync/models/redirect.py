"""Redirect record models with Pydantic v2."""

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


class RedirectType(str, Enum):
    """HTTP semantics of a redirect."""

    PERMANENT = "PERMANENT"
    TEMPORARY = "TEMPORARY"


def strip_whitespace(v: Any) -> Any:
    """
    Strip surrounding whitespace; blank strings become None.

    Spreadsheet exports often pad cells with spaces, and an empty optional
    cell means "not set" rather than "set to empty".
    """
    if isinstance(v, str):
        stripped = v.strip()
        return stripped or None
    return v


def default_redirect_type(v: Any) -> Any:
    """Blank type cells fall back to PERMANENT; other values are upper-cased."""
    if v is None:
        return RedirectType.PERMANENT
    if isinstance(v, str):
        return v.strip().upper() or RedirectType.PERMANENT
    return v


RoutePath = Annotated[str, BeforeValidator(strip_whitespace), Field(min_length=1)]
OptionalText = Annotated[str | None, BeforeValidator(strip_whitespace)]


class Redirect(BaseModel):
    """
    A single redirect as stored by the Rewriter API.

    Attributes use snake_case; aliases match the CSV header and API field
    names (from, to, type, endDate, binding).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    from_: RoutePath = Field(alias="from")
    to: RoutePath
    type: Annotated[RedirectType, BeforeValidator(default_redirect_type)] = RedirectType.PERMANENT
    end_date: OptionalText = Field(default=None, alias="endDate")
    binding: OptionalText = None

    def to_input(self) -> dict[str, Any]:
        """Payload for the SaveMany mutation (API field names, unset fields omitted)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class RedirectPath(BaseModel):
    """A row of a delete CSV; only the source path is required."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    from_: RoutePath = Field(alias="from")
