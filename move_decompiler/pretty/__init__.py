"""Source-text rendering of decompiled modules."""

from .printer import SourcePrinter
from .types import TypePrinter

__all__ = ["SourcePrinter", "TypePrinter"]
