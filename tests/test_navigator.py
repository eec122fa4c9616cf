"""
Tests for the NAP section navigator.
"""

import pytest
import requests

from provisioner.errors import TransportError
from provisioner.navigator import NAP_LIST_PATHS, SIP_SECTION_PATHS, PageNavigator

from conftest import nap_list_page


class TestNavigateTo:
    """PageNavigator.navigate_to() candidate-path walk."""

    def test_stops_at_first_page_with_marker(self, adapter, session):
        adapter.add("GET", "/configurations", body="<h1>Configurations</h1>")
        adapter.add("GET", "/configurations/1/sip", body="<h1>SIP</h1><a href='/naps'>NAP list</a>")
        visit = PageNavigator().visit_sip_section(session)
        assert visit.matched
        assert visit.path == "/configurations/1/sip"
        assert adapter.paths() == ["/configurations", "/configurations/1/sip"]

    def test_transport_failure_on_one_path_is_skipped(self, adapter, session):
        adapter.add("GET", "/configurations", raises=requests.ConnectionError("reset"))
        adapter.add("GET", "/configurations/1/sip", body="<h2>Network Access Point</h2>")
        visit = PageNavigator().visit_sip_section(session)
        assert visit.path == "/configurations/1/sip"

    def test_degrades_to_last_page_fetched(self, adapter, session):
        for path in SIP_SECTION_PATHS:
            adapter.add("GET", path, body="<h1>Welcome</h1>")
        visit = PageNavigator().visit_sip_section(session)
        assert not visit.matched
        assert visit.path == SIP_SECTION_PATHS[-1]
        assert visit.body == "<h1>Welcome</h1>"

    def test_error_pages_never_match(self, adapter, session):
        adapter.add("GET", "/naps", status=500, body="NAP backend error")
        adapter.add("GET", "/configurations/1/sip/naps", body=nap_list_page())
        visit = PageNavigator().open_nap_list(session)
        assert visit.path == "/configurations/1/sip/naps"
        assert visit.ok

    def test_raises_only_when_nothing_could_be_fetched(self, adapter, session):
        for path in NAP_LIST_PATHS:
            adapter.add("GET", path, raises=requests.ConnectionError("down"))
        with pytest.raises(TransportError):
            PageNavigator().open_nap_list(session)

    def test_list_pages_use_list_timeout(self, adapter, session, config):
        adapter.add("GET", "/naps", body=nap_list_page())
        PageNavigator().open_nap_list(session)
        assert adapter.calls[0].timeout == config.list_timeout_s

    def test_custom_markers(self, adapter, session):
        adapter.add("GET", "/a", body="<h1>Trunks</h1>")
        visit = PageNavigator(markers=["Trunks"]).navigate_to(session, ["/a", "/b"])
        assert visit.matched
        assert adapter.paths() == ["/a"]
