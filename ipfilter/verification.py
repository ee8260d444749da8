"""
Core verification logic for scoped IP range and country rules.
"""

import logging
from collections import namedtuple

from flask import jsonify

from .errors import IPFilterError
from .geo import CountryResolver
from .utils import get_client_ips, path_matches, render_block_page, request_from_flask

logger = logging.getLogger(__name__)

# Final verdict for a request; matched_scope is '' when no rule applied
Decision = namedtuple('Decision', ['allow', 'matched_scope', 'block_page'])

PASS_THROUGH = Decision(allow=True, matched_scope='', block_page=None)


class MatchStatus:
    """Which of a rule's criteria the client matched."""

    def __init__(self):
        self.country_match = False
        self.in_range = False

    def any(self):
        return self.country_match or self.in_range


def _match_country(rule, client_ips, resolver):
    for client_ip in client_ips:
        if resolver.resolve(client_ip) in rule.country_codes:
            return True
    return False


def _match_ranges(rule, client_ips):
    for ip_range in rule.ranges:
        for client_ip in client_ips:
            if ip_range.contains(client_ip):
                return True
    return False


def should_allow(rule, client_request, resolver=None):
    """
    Decide whether one rule group lets a request through.

    Only the most specific scope matching the request path is evaluated.

    Args:
        rule: RuleGroup
        client_request: ClientRequest
        resolver: CountryResolver, required if the rule has country codes

    Returns:
        (allow, matched_scope) - (True, '') if no scope matches the path

    Raises:
        NoParsableAddress, LookupFailed
    """
    for scope in rule.scopes:
        if not path_matches(client_request.path, scope):
            continue

        client_ips = get_client_ips(client_request, rule.strict)

        status = MatchStatus()
        if rule.country_codes:
            status.country_match = _match_country(rule, client_ips, resolver)
        if rule.ranges:
            status.in_range = _match_ranges(rule, client_ips)

        if status.any():
            # Block rules deny on a match, allow rules permit on a match
            allow = not rule.is_block
        else:
            allow = rule.is_block

        logger.debug(f"Rule scope '{scope}' matched {client_request.path}: "
                     f"clients={[str(ip) for ip in client_ips]}, "
                     f"country_match={status.country_match}, in_range={status.in_range}, "
                     f"allow={allow}")
        return allow, scope

    return True, ''


def evaluate(config, client_request):
    """
    Combine every rule group's verdict into one decision.

    The rule with the longest matched scope wins; on equal length the later
    rule wins.

    Args:
        config: FilterConfig
        client_request: ClientRequest

    Returns:
        Decision
    """
    resolver = CountryResolver(config.country_reader) if config.country_reader is not None else None

    decision = PASS_THROUGH
    for rule in config.rules:
        allow, matched_scope = should_allow(rule, client_request, resolver)
        if len(matched_scope) >= len(decision.matched_scope):
            decision = Decision(allow, matched_scope, rule.block_page)

    return decision


def verify_request(config, path=None):
    """
    Verify if the current Flask request should be allowed or blocked.

    Args:
        config: FilterConfig
        path: Path to filter on; defaults to the request's own path

    Returns:
        None if the request is allowed, otherwise a Flask response
        - block page with 200, or 403 JSON error, for blocked requests
        - 500 JSON error if the request couldn't be evaluated
    """
    client_request = request_from_flask(path)

    try:
        decision = evaluate(config, client_request)
        if decision.allow:
            logger.debug(f"Allowing {client_request.path} "
                         f"(scope='{decision.matched_scope}')")
            return None

        logger.info(f"Blocked request to {client_request.path} from "
                    f"remote={client_request.remote_addr}, "
                    f"forwarded_for='{client_request.forwarded_for}' "
                    f"(scope='{decision.matched_scope}')")
        return render_block_page(decision.block_page)

    except IPFilterError as e:
        logger.error(f"Error processing request to {client_request.path}: {e}", exc_info=True)
        return jsonify({"error": "Internal Server Error"}), 500


def install_filter(app, config):
    """
    Run the filter in front of every request of a Flask app.

    Args:
        app: Flask application
        config: FilterConfig
    """
    @app.before_request
    def _ip_filter():
        return verify_request(config)

    logger.info(f"IP filter installed on {app.name} with {len(config.rules)} rule(s)")
