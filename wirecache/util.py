from datetime import datetime, timezone
from typing import Iterable, Optional, Union


TIMESTAMP_FORMATS = ('%Y-%m-%dT%H:%M:%S%z', '%Y-%m-%dT%H:%M:%S.%f%z')


def format_timestamp(moment: datetime) -> str:
    """
    Render `moment` as an RFC 3339 timestamp in UTC, e.g. `2024-05-01T10:00:00Z`.

    Naive datetimes are assumed to already be in UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def parse_timestamp(value: str) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp. Returns `None` for anything unparsable,
    including timestamps without a UTC offset.
    """
    value = value.strip()
    for timestamp_format in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, timestamp_format)
        except ValueError:
            continue
    return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def drain(body: Union[None, str, bytes, bytearray, Iterable]) -> bytes:
    """
    Read a request body of any shape `requests` allows into a single `bytes`.

    File-like objects and iterators are consumed; the caller is responsible for
    handing out a fresh view afterwards.
    """
    if body is None:
        return b''
    if isinstance(body, str):
        return body.encode('utf-8')
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    if hasattr(body, 'read'):
        data = body.read()
        return data.encode('utf-8') if isinstance(data, str) else bytes(data)
    return b''.join(chunk.encode('utf-8') if isinstance(chunk, str) else bytes(chunk) for chunk in body)
