"""Rewriter API client."""

from .response_models import ExportPage
from .rewriter import RewriterClient

__all__ = ["ExportPage", "RewriterClient"]
