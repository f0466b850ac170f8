"""Service layer: credentials, GA4 API access, GTM parsing and validation."""
