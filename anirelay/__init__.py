"""anirelay - CORS and HLS relays for third-party anime video hosts."""

__version__ = "0.3.0"
