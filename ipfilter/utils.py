"""
Utility functions for client IP extraction, path matching and block responses.
"""

import fnmatch
import ipaddress
import logging
import mimetypes
from collections import namedtuple
from urllib.parse import unquote

from flask import Response, jsonify, request

from .errors import NoParsableAddress, StreamingFailed

logger = logging.getLogger(__name__)

FORWARDED_FOR_HEADER = 'X-Forwarded-For'
FORWARDED_URI_HEADER = 'X-Forwarded-Uri'

GLOB_CHARS = ('*', '?', '[')

# The parts of an incoming request the filter looks at
ClientRequest = namedtuple('ClientRequest', ['path', 'remote_addr', 'forwarded_for'])


def request_from_flask(path=None):
    """
    Build a ClientRequest from the current Flask request.

    Args:
        path: Path to filter on; defaults to the request's own path

    Returns:
        ClientRequest
    """
    return ClientRequest(
        path=path if path is not None else request.path,
        remote_addr=request.remote_addr or '',
        forwarded_for=request.headers.get(FORWARDED_FOR_HEADER, '')
    )


def forwarded_path():
    """
    Path of the original request when called as a ForwardAuth endpoint.

    Proxies forward the raw request URI, so the path is percent-decoded the
    same way the backend will see it.
    """
    uri = request.headers.get(FORWARDED_URI_HEADER, '')
    if uri:
        return unquote(uri.split('?', 1)[0])
    return request.path


def _strip_port(remote_addr):
    """
    Remove a port from a connection address.

    Handles "1.2.3.4:80", "[::1]:80" and bare addresses.
    """
    remote_addr = remote_addr.strip()
    if remote_addr.startswith('['):
        return remote_addr[1:].split(']', 1)[0]
    if remote_addr.count(':') == 1:
        return remote_addr.split(':', 1)[0]
    return remote_addr


def get_client_ips(client_request, strict):
    """
    Extract the candidate client addresses of a request.

    Uses the X-Forwarded-For chain unless strict is set or the header is
    empty, otherwise the direct connection address.

    Args:
        client_request: ClientRequest
        strict: Ignore X-Forwarded-For entirely

    Returns:
        List of ipaddress objects, in header order

    Raises:
        NoParsableAddress: if no candidate parses
    """
    if client_request.forwarded_for and not strict:
        candidates = client_request.forwarded_for.split(',')
    else:
        candidates = [_strip_port(client_request.remote_addr or '')]

    addresses = []
    for candidate in candidates:
        try:
            addresses.append(ipaddress.ip_address(candidate.strip()))
        except ValueError:
            logger.debug(f"Skipping unparsable client address: {candidate!r}")

    if not addresses:
        raise NoParsableAddress(f"Unable to parse client address from {candidates}")

    return addresses


def path_matches(path, scope):
    """
    Check if a request path falls under a rule scope.

    "/" and "" match everything, scopes with glob characters are matched
    with fnmatch, anything else is a case-sensitive prefix.
    """
    if scope in ('', '/'):
        return True
    if any(c in scope for c in GLOB_CHARS):
        return fnmatch.fnmatchcase(path, scope)
    return path.startswith(scope)


def sort_scopes(scopes):
    """Order scopes most specific first: longest, then alphabetical."""
    return tuple(sorted(set(scopes), key=lambda scope: (-len(scope), scope)))


def render_block_page(block_page=None):
    """
    Build the response for a blocked request.

    Args:
        block_page: Path of a file to send as the body (optional)

    Returns:
        Flask response: the block page with status 200, or a 403 JSON error

    Raises:
        StreamingFailed: if the block page can't be read
    """
    if not block_page:
        return jsonify({"error": "Forbidden"}), 403

    try:
        with open(block_page, 'rb') as f:
            body = f.read()
    except OSError as e:
        raise StreamingFailed(f"Can't read block page {block_page}: {e}")

    mimetype = mimetypes.guess_type(block_page)[0] or 'text/html'
    return Response(body, status=200, mimetype=mimetype)
