"""Object key resolution.

Callers hand us either a bare object-storage key or a full URL pointing at
the bucket or the CDN. Both are normalised to the bare key.
"""

import logging
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


def resolve_key(value: str) -> str:
    """Return the object key for a bare key or an absolute URL.

    ``https://bucket.s3.region.amazonaws.com/course-images/a.jpg`` and
    ``https://d123.cloudfront.net/course-images/a.jpg`` both resolve to
    ``course-images/a.jpg``. Anything that does not parse as an absolute
    URL is returned unchanged. Never raises.
    """
    try:
        parts = urlsplit(value)
    except ValueError:
        logger.debug("Could not parse %r as a URL, treating it as a key", value)
        return value
    if not parts.scheme or not parts.netloc:
        return value
    return parts.path[1:] if parts.path.startswith("/") else parts.path
