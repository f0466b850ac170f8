"""GTM → GA4 parameter validation."""

from .gtm_validator import GTMParameterValidator

__all__ = ["GTMParameterValidator"]
