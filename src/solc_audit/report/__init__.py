"""Report generation."""

from .generator import FunctionView, ReportGenerator

__all__ = ["FunctionView", "ReportGenerator"]
