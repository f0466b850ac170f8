"""Google Tag Manager container export parsing."""

from .export_parser import parse_gtm_export

__all__ = ["parse_gtm_export"]
