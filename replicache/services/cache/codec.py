"""
Payload Codec

Turns a Python value into the bytes stored on every replica and back:
pickle, optionally followed by gzip. The payload carries no header, so the
compress flag used to encode must be passed again to decode.
"""

import gzip
import pickle
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)


def encode(value: Any, compress: bool = True) -> Optional[bytes]:
    """
    Serialize a value, gzip-compressing it when requested.

    Returns None instead of partial bytes when the value is None or
    cannot be pickled.
    """
    if value is None:
        return None

    try:
        payload = pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
    except (pickle.PicklingError, TypeError, AttributeError, RecursionError) as e:
        logger.warning(
            "cache_encode_failed",
            value_type=type(value).__name__,
            error=str(e),
        )
        return None

    if compress:
        return gzip.compress(payload)
    return payload


def decode(payload: Optional[bytes], decompress: bool = True) -> Optional[Any]:
    """
    Inverse of encode(); returns None when the bytes cannot be decoded.

    A mismatched decompress flag surfaces here as a decode failure.
    """
    if not payload:
        return None

    # Unpickling corrupt bytes can raise nearly any exception type
    try:
        if decompress:
            payload = gzip.decompress(payload)
        return pickle.loads(payload)
    except Exception as e:
        logger.warning(
            "cache_decode_failed",
            decompress=decompress,
            payload_size=len(payload),
            error_type=type(e).__name__,
            error=str(e),
        )
        return None
