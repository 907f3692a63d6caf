"""CDN URL signing and object key resolution."""

from secure_media.signing.cloudfront import sign
from secure_media.signing.keys import resolve_key

__all__ = ["resolve_key", "sign"]
