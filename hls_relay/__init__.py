"""CORS-unlocking relay for HLS manifests and media."""

__version__ = "0.1.0"
