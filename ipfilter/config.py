"""
Configuration management for the IP filter.
Handles loading, parsing, and validating rule groups from YAML files.
"""

import os
import logging
from collections import namedtuple

import yaml

from .blocklist_fetcher import fetch_range_list
from .errors import ConfigurationError, InvalidAddress
from .geo import open_country_db
from .ranges import parse_ip_range
from .utils import sort_scopes

logger = logging.getLogger(__name__)

# Configuration paths
CONFIG_PATH = os.getenv('CONFIG_PATH', '/app/config.yaml')
CONFIG_EXAMPLE_PATH = '/app/config.example.yaml'

DEFAULT_CACHE_HOURS = 168

RULE_BLOCK = 'block'
RULE_ALLOW = 'allow'

RULE_KEYS = {'paths', 'rule', 'strict', 'blockpage', 'country', 'ip', 'ip_lists', 'database'}


class RuleGroup(namedtuple('RuleGroup', [
        'scopes', 'is_block', 'strict', 'block_page', 'country_codes', 'ranges'])):
    """
    One configured rule block.

    scopes are stored most specific first; country_codes is a frozenset and
    ranges a tuple of IPRange, so a RuleGroup is safe to share between
    concurrent requests.
    """

    __slots__ = ()

    @classmethod
    def create(cls, scopes, is_block=False, strict=False, block_page=None,
               country_codes=(), ranges=()):
        if not scopes:
            raise ConfigurationError("A rule needs at least one path scope")
        return cls(
            scopes=sort_scopes(scopes),
            is_block=bool(is_block),
            strict=bool(strict),
            block_page=block_page or None,
            country_codes=frozenset(c.upper() for c in country_codes),
            ranges=tuple(ranges)
        )


# Finished configuration: rule groups in configuration order plus the
# country database reader (None if no rule filters by country)
FilterConfig = namedtuple('FilterConfig', ['rules', 'country_reader'])


class ConfigBuilder:
    """
    Accumulates rule groups and the country database, then validates them
    into a FilterConfig.
    """

    def __init__(self, cache_hours=DEFAULT_CACHE_HOURS):
        self.cache_hours = cache_hours
        self._rules = []
        self._country_reader = None

    def set_database(self, reader):
        """Use an opened country database. Only one may be configured."""
        if self._country_reader is not None:
            raise ConfigurationError("A database is already opened")
        self._country_reader = reader
        return self

    def open_database(self, path):
        """Open and use a country database; checked first so a second file is never opened."""
        if self._country_reader is not None:
            raise ConfigurationError("A database is already opened")
        return self.set_database(open_country_db(path))

    def add_rule(self, rule):
        self._rules.append(rule)
        return self

    def parse_rule(self, raw):
        """
        Parse one rule mapping from the YAML config and add it.

        Args:
            raw: dict with keys paths, rule, strict, blockpage, country, ip,
                 ip_lists, database

        Returns:
            The parsed RuleGroup
        """
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Rule must be a mapping, got: {raw!r}")

        unknown = set(raw) - RULE_KEYS
        if unknown:
            logger.warning(f"Ignoring unknown rule keys: {sorted(unknown)}")

        scopes = _as_list(raw.get('paths'))
        if not scopes:
            raise ConfigurationError("Rule is missing 'paths'")

        rule = str(raw.get('rule', RULE_ALLOW)).lower()
        if rule not in (RULE_BLOCK, RULE_ALLOW):
            raise ConfigurationError("Rule should be 'block' or 'allow'")

        if raw.get('database'):
            self.open_database(raw['database'])

        block_page = raw.get('blockpage')
        if block_page and not os.path.exists(block_page):
            raise ConfigurationError(f"No such file: {block_page}")

        country_codes = []
        if 'country' in raw:
            country_codes = [str(c) for c in _as_list(raw['country'])]
            if not country_codes:
                raise ConfigurationError("'country' needs at least one country code")

        expressions = []
        if 'ip' in raw:
            expressions = [str(ip) for ip in _as_list(raw['ip'])]
            if not expressions:
                raise ConfigurationError("'ip' needs at least one address or range")

        for source in _as_list(raw.get('ip_lists')):
            expressions.extend(fetch_range_list(source, cache_hours=self.cache_hours))

        ranges = []
        for expression in expressions:
            try:
                ranges.append(parse_ip_range(expression))
            except InvalidAddress as e:
                raise ConfigurationError(str(e))

        group = RuleGroup.create(
            scopes=[str(s) for s in scopes],
            is_block=(rule == RULE_BLOCK),
            strict=_as_bool(raw.get('strict', False)),
            block_page=block_page,
            country_codes=country_codes,
            ranges=ranges
        )
        self.add_rule(group)
        return group

    def build(self):
        """
        Validate the accumulated rules.

        Returns:
            FilterConfig

        Raises:
            ConfigurationError: if the rules can't work together
        """
        has_country_codes = any(rule.country_codes for rule in self._rules)
        has_ranges = any(rule.ranges for rule in self._rules)

        if has_country_codes and self._country_reader is None:
            raise ConfigurationError("Database is required to block/allow by country")

        if not has_country_codes and not has_ranges:
            raise ConfigurationError("No IPs or Country codes has been provided")

        return FilterConfig(rules=tuple(self._rules), country_reader=self._country_reader)


def _as_bool(value):
    """YAML booleans, or strings parsed like the env settings."""
    return str(value).lower() == 'true'


def _as_list(value):
    """Accept a single YAML scalar or a list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _load_yaml_config(path=None):
    """Load configuration from YAML file."""
    # Try custom config first, then fall back to example
    config_paths = [path] if path else [CONFIG_PATH, CONFIG_EXAMPLE_PATH]

    for config_path in config_paths:
        if not os.path.exists(config_path):
            continue
        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load config from {config_path}: {e}")
            raise ConfigurationError(f"Can't read config {config_path}: {e}")
        logger.info(f"Loaded configuration from {config_path}")
        return config

    raise ConfigurationError(f"No config file found (tried {', '.join(config_paths)})")


def config_from_dict(raw):
    """
    Build a FilterConfig from an already-parsed configuration mapping.
    """
    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration must be a mapping")

    settings = raw.get('settings') or {}
    try:
        cache_hours = int(os.getenv('CACHE_HOURS', str(settings.get('cache_hours', DEFAULT_CACHE_HOURS))))
    except ValueError as e:
        raise ConfigurationError(f"Invalid cache_hours: {e}")

    builder = ConfigBuilder(cache_hours=cache_hours)
    if raw.get('database'):
        builder.open_database(raw['database'])

    rules = raw.get('rules') or []
    logger.info(f"Parsing {len(rules)} rule(s)")
    for raw_rule in rules:
        builder.parse_rule(raw_rule)

    config = builder.build()
    _log_config(config)
    return config


def load_config(path=None):
    """
    Load and validate the filter configuration.

    Args:
        path: YAML file; defaults to CONFIG_PATH then the example config

    Returns:
        FilterConfig
    """
    return config_from_dict(_load_yaml_config(path))


def _log_config(config):
    """Log configuration details."""
    logger.info("Configuration:")
    logger.info(f"  Country database: {config.country_reader is not None}")
    for i, rule in enumerate(config.rules):
        logger.info(f"  Rule {i}: {'block' if rule.is_block else 'allow'} "
                    f"scopes={list(rule.scopes)} strict={rule.strict}")
        if rule.country_codes:
            logger.info(f"    Countries: {sorted(rule.country_codes)}")
        if rule.ranges:
            logger.info(f"    Ranges: {len(rule.ranges)}")
        if rule.block_page:
            logger.info(f"    Block page: {rule.block_page}")
