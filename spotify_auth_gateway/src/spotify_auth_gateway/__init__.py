"""OAuth2 Authorization Code gateway for a single identity provider."""

__version__ = "0.1.0"
