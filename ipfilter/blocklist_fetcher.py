"""
Range list fetcher and caching functionality.
Handles downloading and caching IP range lists from remote URLs or local files.
"""

import os
import logging
import hashlib
import time

import requests

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Cache directory for downloaded range lists
CACHE_DIR = os.getenv('CACHE_DIR', '/tmp/ipfilter-lists')


def fetch_range_list(source, timeout=10, cache_hours=168):
    """
    Fetch an IP range list from remote URL or local file path.

    Args:
        source: URL or file path to fetch the list from
        timeout: Request timeout in seconds (default: 10)
        cache_hours: Cache validity period in hours (default: 168 = 7 days)

    Returns:
        List of range expressions (strings), one per non-comment line

    Raises:
        ConfigurationError: if the source can't be fetched or read
    """
    try:
        if source.startswith('file://') or source.startswith('/'):
            file_path = source[len('file://'):] if source.startswith('file://') else source
            logger.info(f"Reading range list from local file: {file_path}")
            with open(file_path, 'r') as f:
                content = f.read()
        else:
            content = _fetch_remote_list(source, timeout, cache_hours)
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to fetch range list from {source}: {e}")
        raise ConfigurationError(f"Can't fetch range list {source}: {e}")
    except OSError as e:
        logger.error(f"Failed to read range list {source}: {e}")
        raise ConfigurationError(f"Can't read range list {source}: {e}")

    entries = _parse_list_content(content)
    logger.info(f"Loaded {len(entries)} range(s) from {source}")
    return entries


def _fetch_remote_list(source, timeout, cache_hours):
    """
    Fetch a range list from a URL with caching support.

    Returns:
        Content of the list as string
    """
    # Cache filename from URL hash
    url_hash = hashlib.md5(source.encode()).hexdigest()
    cache_file = os.path.join(CACHE_DIR, f"ranges_{url_hash}.txt")
    cache_time_file = os.path.join(CACHE_DIR, f"ranges_{url_hash}.time")

    content = _read_cache_if_valid(cache_file, cache_time_file, cache_hours, source)

    if content is None:
        logger.info(f"Fetching range list from {source}")
        response = requests.get(source, timeout=timeout)
        response.raise_for_status()
        content = response.text
        _save_to_cache(cache_file, cache_time_file, content, source)

    return content


def _read_cache_if_valid(cache_file, cache_time_file, cache_hours, source):
    """
    Read a cached list if it exists and is still valid.

    Returns:
        Cached content as string, or None if cache is invalid/missing
    """
    if not (os.path.exists(cache_file) and os.path.exists(cache_time_file)):
        return None

    try:
        with open(cache_time_file, 'r') as f:
            cache_timestamp = float(f.read().strip())

        age_hours = (time.time() - cache_timestamp) / 3600
        if age_hours >= cache_hours:
            logger.info(f"Cache expired for {source} (age: {age_hours:.1f}h), fetching fresh data")
            return None

        logger.info(f"Using cached range list from {source} (age: {age_hours:.1f}h)")
        with open(cache_file, 'r') as f:
            return f.read()
    except (OSError, ValueError) as e:
        logger.warning(f"Error reading cache: {e}, fetching fresh data")
        return None


def _save_to_cache(cache_file, cache_time_file, content, source):
    """Save fetched content to cache files."""
    try:
        os.makedirs(CACHE_DIR, exist_ok=True)
        with open(cache_file, 'w') as f:
            f.write(content)
        with open(cache_time_file, 'w') as f:
            f.write(str(time.time()))
        logger.info(f"Cached range list from {source}")
    except OSError as e:
        logger.warning(f"Failed to cache range list: {e}")


def _parse_list_content(content):
    """Range expressions from list content, skipping blanks and # comments."""
    entries = []
    for line in content.splitlines():
        line = line.split('#', 1)[0].strip()
        if line:
            entries.append(line)
    return entries
