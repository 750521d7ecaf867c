"""
Derivation of cache keys from requests.

A key is a version-5 UUID computed over a canonical rendering of the request:
the method, every header with its values (both sorted), the full URL and the
body. Header order and value order therefore never influence the key, while any
change to a name, a value, the URL or a body byte does.
"""

import hashlib
from io import BytesIO
import logging
from typing import Dict, List
import uuid

import requests

from .errors import KeyDerivationError
from .model import Request
from .util import drain


logger = logging.getLogger(__name__)

KEY_NAMESPACE = uuid.NAMESPACE_OID


def canonicalize(request: Request) -> bytes:
    merged: Dict[str, List[str]] = {}
    for name, values in request.headers.items():
        if isinstance(values, str):
            values = [values]
        merged.setdefault(name.lower(), []).extend(values)

    buffer = bytearray()
    buffer += request.method.encode('utf-8')
    buffer += b'\n'
    for name in sorted(merged):
        buffer += name.encode('utf-8')
        buffer += b':'
        buffer += ','.join(sorted(merged[name])).encode('utf-8')
        buffer += b';'
    buffer += request.uri.encode('utf-8')
    buffer += b'\n'
    buffer += request.body
    return bytes(buffer)


def derive_key(request: Request) -> str:
    """
    Compute the cache key of `request`.

    @return
      The canonical string form of a version-5 UUID in the OID namespace.
    """
    # Same construction as `uuid.uuid5`, which only accepts `bytes` names on recent interpreters.
    digest = hashlib.sha1(KEY_NAMESPACE.bytes + canonicalize(request)).digest()
    return str(uuid.UUID(bytes=digest[:16], version=5))


def capture_request(prepared: requests.PreparedRequest) -> Request:
    """
    Snapshot a prepared request without consuming it.

    Bodies that can only be read once (files, generators) are read into memory
    and replaced on `prepared` by a fresh stream over the same bytes, so the
    request that is eventually forwarded carries exactly the original payload.

    @throws KeyDerivationError
      If the body could not be read.
    """
    body = prepared.body
    try:
        data = drain(body)
    except (OSError, ValueError, TypeError) as e:
        raise KeyDerivationError('Could not read the request body', e, request=prepared) from e

    if body is not None and not isinstance(body, (str, bytes, bytearray, memoryview)):
        logger.debug('Replacing the consumed request body with an in-memory copy.')
        prepared.body = BytesIO(data)
        # `requests` seeks back to this position when it replays the body on a redirect.
        if getattr(prepared, '_body_position', None) is not None:
            prepared._body_position = 0

    headers = {name: [value.decode('latin-1') if isinstance(value, bytes) else str(value)]
               for name, value in prepared.headers.items()}
    return Request(method=prepared.method or 'GET', uri=prepared.url or '', headers=headers, body=data)
