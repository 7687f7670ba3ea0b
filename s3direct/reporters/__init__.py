"""Reporter modules for upload progress and results."""

from .base import CompositeReporter, Reporter
from .console import ConsoleReporter
from .json_reporter import JsonReporter

__all__ = ["Reporter", "CompositeReporter", "ConsoleReporter", "JsonReporter"]
