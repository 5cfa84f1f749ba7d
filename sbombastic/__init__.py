"""API types, scheme, version mapping, reconcilers and settings for registry discovery, SBOM generation and scanning."""

__version__ = "0.1.0"