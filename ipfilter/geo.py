"""
Country lookups against a MaxMind GeoIP2/GeoLite2 database.

Country, City and Enterprise databases all carry the country ISO code; each
has its own lookup method on the geoip2 reader.
"""

import logging

import geoip2.database
from geoip2.errors import AddressNotFoundError, GeoIP2Error
from maxminddb.errors import InvalidDatabaseError

from .errors import ConfigurationError, LookupFailed

logger = logging.getLogger(__name__)

# database_type marker -> geoip2 Reader method
LOOKUP_METHODS = (
    ('Country', 'country'),
    ('City', 'city'),
    ('Enterprise', 'enterprise'),
)


def lookup_method(database_type):
    """Name of the reader method that returns country data, or None."""
    for marker, method in LOOKUP_METHODS:
        if marker in database_type:
            return method
    return None


def open_country_db(path):
    """
    Open a GeoIP2 database that can answer country lookups.

    Raises:
        ConfigurationError: if the database can't be opened or holds no
                            country data (e.g. an ASN database)
    """
    try:
        reader = geoip2.database.Reader(path)
    except (OSError, InvalidDatabaseError, ValueError) as e:
        logger.error(f"Failed to load Country database from {path}: {e}")
        raise ConfigurationError(f"Can't open database: {path}")

    database_type = reader.metadata().database_type
    if lookup_method(database_type) is None:
        reader.close()
        raise ConfigurationError(f"Database {path} has no country data (type {database_type})")

    logger.info(f"Loaded {database_type} database from {path}")
    return reader


class CountryResolver:
    """Resolves client addresses to ISO country codes."""

    def __init__(self, reader):
        self.reader = reader
        method = 'country'
        if isinstance(reader, geoip2.database.Reader):
            method = lookup_method(reader.metadata().database_type) or method
        self._lookup = getattr(reader, method)

    def resolve(self, address):
        """
        Look up the ISO country code of an address.

        Args:
            address: ipaddress object

        Returns:
            ISO code string, '' if the database has no country for it

        Raises:
            LookupFailed: on any database error
        """
        try:
            response = self._lookup(str(address))
        except AddressNotFoundError:
            logger.debug(f"Country not found for IP: {address}")
            return ''
        except (GeoIP2Error, InvalidDatabaseError, OSError, ValueError, TypeError) as e:
            raise LookupFailed(f"Country lookup failed for {address}: {e}")

        return response.country.iso_code or ''
