"""
Serialization of responses in HTTP/1.x wire format.

An entry on disk is exactly what a server would have sent: a status line, the
headers, a blank line and the raw body. `Content-Length` is always written so
the body boundary is explicit.
"""

from io import BytesIO
import re
from typing import List, Tuple

from .errors import ParseError
from .model import Response


HEADER_ENCODING = 'iso-8859-1'
FRAMING_HEADERS = {'content-length', 'transfer-encoding', 'trailer'}
MAX_LINE_LENGTH = 65536

_STATUS_LINE = re.compile(r'^HTTP/(\d)\.(\d) (\d{3})(?: (.*))?$')
_HEADER_NAME = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


def dump_response(response: Response) -> bytes:
    major, minor = divmod(response.version, 10)
    lines = ['HTTP/{}.{} {} {}'.format(major, minor, response.status, response.reason).rstrip()]
    for name, value in response.headers:
        if name.lower() in FRAMING_HEADERS:
            continue
        lines.append('{}: {}'.format(name, value))
    lines.append('Content-Length: {}'.format(len(response.body)))

    head = '\r\n'.join(lines) + '\r\n\r\n'
    return head.encode(HEADER_ENCODING) + response.body


def load_response(data: bytes) -> Response:
    """
    Parse a complete response.

    @throws ParseError
      If `data` is not a well-formed response, or its body is shorter than its
      `Content-Length` announces.
    """
    stream = BytesIO(data)

    status_line = _read_line(stream)
    match = _STATUS_LINE.match(status_line)
    if match is None:
        raise ParseError('Malformed status line: {!r}'.format(status_line))
    major, minor, status, reason = match.groups()

    headers = _read_headers(stream)
    body = stream.read()

    lengths = {value.strip() for name, value in headers if name.lower() == 'content-length'}
    if len(lengths) > 1:
        raise ParseError('Conflicting Content-Length headers: {}'.format(sorted(lengths)))
    if lengths:
        length = lengths.pop()
        if not length.isdigit():
            raise ParseError('Malformed Content-Length: {!r}'.format(length))
        if len(body) < int(length):
            raise ParseError('Truncated body: expected {} bytes, found {}'.format(length, len(body)))
        body = body[:int(length)]

    return Response(status=int(status),
                    reason=reason or '',
                    headers=headers,
                    body=body,
                    version=int(major) * 10 + int(minor))


def _read_line(stream: BytesIO) -> str:
    line = stream.readline(MAX_LINE_LENGTH + 1)
    if len(line) > MAX_LINE_LENGTH:
        raise ParseError('Line too long')
    if not line.endswith(b'\n'):
        raise ParseError('Unexpected end of data')
    return line.rstrip(b'\r\n').decode(HEADER_ENCODING)


def _read_headers(stream: BytesIO) -> List[Tuple[str, str]]:
    headers = []
    while True:
        line = _read_line(stream)
        if not line:
            return headers
        if line[0] in ' \t':
            raise ParseError('Folded header lines are not supported: {!r}'.format(line))

        name, separator, value = line.partition(':')
        if not separator or not _HEADER_NAME.match(name):
            raise ParseError('Malformed header line: {!r}'.format(line))
        headers.append((name, value.strip()))
