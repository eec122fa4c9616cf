"""
Tests for the authenticity-token cascade and resolver.
"""

import pytest

from provisioner.errors import StaleTokenError, TokenNotFound
from provisioner.tokens import TokenResolver, extract_token, is_valid_token

from conftest import LOGIN_TOKEN, TOKEN, section_page

DECOY = "ZmFrZVRva2VuQnVpbHRCeVNjcmlwdE5vdFRoZVJlYWxPbmU="


# ====================================================================
# 1. Shared validator
# ====================================================================

class TestValidator:
    """One predicate applied to every candidate of every strategy."""

    def test_accepts_rails_token(self):
        assert is_valid_token(TOKEN)

    def test_accepts_url_safe_alphabet(self):
        assert is_valid_token("abc_DEF-123_ghi-456")

    def test_rejects_short_values(self):
        """Ten characters or fewer is never a token."""
        assert not is_valid_token("abcdef1234")

    def test_rejects_empty(self):
        assert not is_valid_token("")
        assert not is_valid_token(None)

    @pytest.mark.parametrize("candidate", [
        "encodeURIComponent(window._token)",
        "encodeURIComponentXXXXXXXX",
        "function(){return t}",
        "window.csrfTokenValue",
        "document.querySelector",
        'prefixpart + suffixpart',
        "const",
        "(abcdefghijklmnop)",
    ])
    def test_rejects_code_like_candidates(self, candidate):
        """Script fragments are rejected even when long enough."""
        assert not is_valid_token(candidate)

    def test_rejects_foreign_characters(self):
        assert not is_valid_token("abcdefghijkl;mnop")
        assert not is_valid_token("abcdef ghijklmnop")


# ====================================================================
# 2. Strategy cascade
# ====================================================================

class TestCascade:
    """extract_token() walks the strategies in order."""

    def test_hidden_field_beats_script_decoy(self):
        """A page with a script-built decoy ahead of the form yields the form token."""
        page = f"""<html><head>
<script>var authenticity_token = encodeURIComponent(window.location.href) + "{DECOY}";</script>
</head><body>
<form><input type="hidden" name="authenticity_token" value="{TOKEN}"></form>
</body></html>"""
        value, strategy = extract_token(page)
        assert value == TOKEN
        assert strategy == "hidden_field"

    def test_value_before_name_attribute_order(self):
        page = f'<form><input value="{TOKEN}" type="hidden" name="authenticity_token"></form>'
        value, _ = extract_token(page)
        assert value == TOKEN

    def test_single_quoted_hidden_field(self):
        page = f"<form><input name='authenticity_token' type='hidden' value='{TOKEN}'></form>"
        value, strategy = extract_token(page)
        assert value == TOKEN
        assert strategy == "hidden_field"

    def test_code_like_hidden_value_falls_through_to_meta(self):
        """An invalid hidden value does not stop the cascade."""
        page = f"""<html><head><meta name="csrf-token" content="{TOKEN}"></head>
<body><input type="hidden" name="authenticity_token" value="encodeURIComponent(window._t)"></body></html>"""
        value, strategy = extract_token(page)
        assert value == TOKEN
        assert strategy == "meta_tag"

    def test_meta_tag_content_before_name(self):
        page = f'<html><head><meta content="{TOKEN}" name="csrf-token"></head></html>'
        value, strategy = extract_token(page)
        assert value == TOKEN
        assert strategy == "meta_tag"

    def test_script_variable(self):
        page = f'<html><script>window.csrfToken = "{TOKEN}";</script></html>'
        value, strategy = extract_token(page)
        assert value == TOKEN
        assert strategy == "script_variable"

    def test_generic_hidden_input(self):
        page = f'<form><input type="hidden" name="state" value="{TOKEN}"></form>'
        value, strategy = extract_token(page)
        assert value == TOKEN
        assert strategy == "hidden_input"

    def test_base64_fallback(self):
        long_value = "A1b2C3d4E5f6G7h8I9j0K1l2M3n4O5p6Q7r8S9t0U1v2"
        page = f'<div data-state="{long_value}">Loading</div>'
        value, strategy = extract_token(page)
        assert value == long_value
        assert strategy == "base64_fallback"

    def test_entities_are_unescaped(self):
        page = '<input name="authenticity_token" type="hidden" value="abc&#x2F;def&#43;ghij12345=">'
        value, _ = extract_token(page)
        assert value == "abc/def+ghij12345="

    def test_nothing_found(self):
        assert extract_token("<html><body><p>Welcome</p></body></html>") is None
        assert extract_token("") is None


# ====================================================================
# 3. Resolver page sequence
# ====================================================================

class TestTokenResolver:
    """TokenResolver.resolve(): supplied page, /naps/new, then fresh /login."""

    def test_uses_supplied_page_without_fetching(self, adapter, session):
        token = TokenResolver().resolve(session, page=section_page(TOKEN))
        assert token.value == TOKEN
        assert token.epoch == session.epoch
        assert session.token == token
        assert adapter.calls == []

    def test_falls_back_to_new_nap_form(self, adapter, session):
        adapter.add("GET", "/naps/new", body=section_page(TOKEN))
        token = TokenResolver().resolve(session, page="<p>no token here</p>")
        assert token.value == TOKEN
        assert adapter.paths() == ["/naps/new"]

    def test_refetches_login_page_before_giving_up(self, adapter, session):
        adapter.add("GET", "/login", body=f'<input name="authenticity_token" type="hidden" value="{LOGIN_TOKEN}">')
        token = TokenResolver().resolve(session, page="<p>no token here</p>")
        assert token.value == LOGIN_TOKEN
        assert adapter.paths() == ["/naps/new", "/login"]

    def test_raises_when_no_page_has_a_token(self, adapter, session):
        adapter.add("GET", "/login", body="<p>maintenance</p>")
        with pytest.raises(TokenNotFound):
            TokenResolver().resolve(session, page="<p>nothing</p>")

    def test_token_is_stale_after_reset(self, adapter, session):
        """A token is never accepted once its session window has been reset."""
        token = TokenResolver().resolve(session, page=section_page(TOKEN))
        session.reset()
        with pytest.raises(StaleTokenError):
            session.require_current(token)
