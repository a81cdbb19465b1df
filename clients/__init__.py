"""
Byte-source clients.

Provide access to the raw CSV bytes behind each snapshot's storage path.
"""

from .storage import ByteSource, HttpByteSource, LocalByteSource, build_byte_source

__all__ = ["ByteSource", "HttpByteSource", "LocalByteSource", "build_byte_source"]
