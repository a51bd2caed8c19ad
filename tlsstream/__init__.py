"""TLS helpers: timed sockets, TLS record tracing, SNI extraction and certificate selection."""

__version__ = "2.1.7"

__all__ = [
    "base_sock",
    "cert_store",
    "certificates",
    "handle",
    "sec_buffers",
    "tls_helper",
    "utilities",
]