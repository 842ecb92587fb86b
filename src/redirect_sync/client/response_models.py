"""Pydantic models for Rewriter GraphQL responses.

Only the parts the transfer engine reads are modelled; unknown fields are
ignored so additions on the server side do not break the client.

Usage:
    payload = response.json()
    envelope = GraphQLResponse.model_validate(payload)
    page = ListRedirectsData.model_validate(envelope.data or {}).page()
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GraphQLResponse(BaseModel):
    """Top-level GraphQL envelope: {"data": ..., "errors": [...]}."""

    data: dict[str, Any] | None = None
    errors: list[dict[str, Any]] | None = None

    model_config = ConfigDict(extra="ignore")


class ExportPage(BaseModel):
    """One page of listRedirects.

    Attributes:
        routes: Raw route dictionaries (from, to, type, endDate, binding)
        next: Cursor of the following page; None on the last page
    """

    routes: list[dict[str, Any]] = Field(default_factory=list)
    next: str | None = None

    model_config = ConfigDict(extra="ignore")


class _RedirectQuery(BaseModel):
    listRedirects: ExportPage | None = None

    model_config = ConfigDict(extra="ignore")


class ListRedirectsData(BaseModel):
    """`data` of the ListRedirects query."""

    redirect: _RedirectQuery | None = None

    model_config = ConfigDict(extra="ignore")

    def page(self) -> ExportPage:
        """The listed page, or an empty final page when the server sent nothing."""
        if self.redirect is None or self.redirect.listRedirects is None:
            return ExportPage()
        return self.redirect.listRedirects


class _RedirectMutation(BaseModel):
    saveMany: bool | None = None
    deleteMany: bool | None = None

    model_config = ConfigDict(extra="ignore")


class MutationData(BaseModel):
    """`data` of the SaveMany and DeleteMany mutations."""

    redirect: _RedirectMutation | None = None

    model_config = ConfigDict(extra="ignore")
