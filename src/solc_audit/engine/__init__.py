"""Analysis engine boundary and adapters."""

from .base import AnalysisEngine
from .dump import DumpEngine, load_dump

__all__ = ["AnalysisEngine", "DumpEngine", "load_dump"]
