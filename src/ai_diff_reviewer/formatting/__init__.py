"""
Review export formatting
"""

from .export import EXPORT_FORMATS, ReviewExporter

__all__ = ["EXPORT_FORMATS", "ReviewExporter"]
