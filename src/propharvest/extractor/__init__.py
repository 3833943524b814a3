"""Record extraction from raw listing pages."""

from .property_extractor import PropertyExtractor, extract_properties, parse_row

__all__ = ["PropertyExtractor", "extract_properties", "parse_row"]
