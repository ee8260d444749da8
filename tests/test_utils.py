"""
Tests for client IP extraction, scope ordering and path matching
"""
import ipaddress

import pytest

from ipfilter.errors import NoParsableAddress
from ipfilter.utils import ClientRequest, get_client_ips, path_matches, sort_scopes


def addresses(*texts):
    return [ipaddress.ip_address(t) for t in texts]


class TestGetClientIPs:
    """Test candidate address extraction"""

    def test_forwarded_for_chain(self):
        req = ClientRequest('/', '10.1.1.1', '1.2.3.4, 5.6.7.8')
        assert get_client_ips(req, strict=False) == addresses('1.2.3.4', '5.6.7.8')

    def test_remote_addr_without_header(self):
        req = ClientRequest('/', '10.1.1.1', '')
        assert get_client_ips(req, strict=False) == addresses('10.1.1.1')

    def test_strict_ignores_forwarded_for(self):
        """Strict mode only trusts the connection address"""
        req = ClientRequest('/', '10.1.1.1', '1.2.3.4')
        assert get_client_ips(req, strict=True) == addresses('10.1.1.1')

    def test_unparsable_entries_are_skipped(self):
        req = ClientRequest('/', '10.1.1.1', 'unknown, 1.2.3.4 ,garbage')
        assert get_client_ips(req, strict=False) == addresses('1.2.3.4')

    @pytest.mark.parametrize('remote_addr, expected', [
        ('1.2.3.4:5678', '1.2.3.4'),
        ('[2001:db8::1]:443', '2001:db8::1'),
        ('2001:db8::1', '2001:db8::1'),
        (' 1.2.3.4 ', '1.2.3.4'),
    ])
    def test_port_is_stripped(self, remote_addr, expected):
        req = ClientRequest('/', remote_addr, '')
        assert get_client_ips(req, strict=False) == addresses(expected)

    def test_nothing_parsable_in_header(self):
        """Header present but unparsable is an error, not a fallback"""
        req = ClientRequest('/', '10.1.1.1', 'unknown, garbage')
        with pytest.raises(NoParsableAddress):
            get_client_ips(req, strict=False)

    def test_no_remote_addr(self):
        with pytest.raises(NoParsableAddress):
            get_client_ips(ClientRequest('/', '', ''), strict=True)


class TestScopes:
    """Test scope ordering and path matching"""

    def test_sort_longest_first_then_alphabetical(self):
        assert sort_scopes(['/a', '/ab', '/b']) == ('/ab', '/a', '/b')

    def test_sort_removes_duplicates(self):
        assert sort_scopes(['/x', '/x', '/']) == ('/x', '/')

    @pytest.mark.parametrize('path, scope, expected', [
        ('/anything', '/', True),
        ('/anything', '', True),
        ('/admin/users', '/admin', True),
        ('/administrator', '/admin', True),
        ('/Admin', '/admin', False),
        ('/public', '/admin', False),
        ('/files/report.pdf', '/files/*.pdf', True),
        ('/files/report.txt', '/files/*.pdf', False),
    ])
    def test_path_matches(self, path, scope, expected):
        assert path_matches(path, scope) is expected
