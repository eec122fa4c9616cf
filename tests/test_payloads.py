"""
Tests for the NAP form body builders.
"""

from provisioner.models import NapDraft
from provisioner.payloads import build_create_form, build_update_form, is_form_key

TOKEN = "tok-1234567890abcdef"


def _values(form, key):
    return [value for k, value in form if k == key]


class TestCreateForm:

    def test_exact_minimal_vocabulary(self):
        form = build_create_form(NapDraft(name="carrier-a"), TOKEN)
        assert form[0] == ("authenticity_token", TOKEN)
        assert form[1] == ("nap[name]", "carrier-a")
        assert form[-2] == ("nap[configuration_id]", "1")
        assert form[-1] == ("commit", "Create")
        assert _values(form, "nap[profile_id]") == ["1"]

    def test_enabled_checkbox_pair(self):
        """Hidden 0 first, then the real value under the same key."""
        enabled = build_create_form(NapDraft(name="a"), TOKEN)
        disabled = build_create_form(NapDraft(name="a", fields={"enabled": "false"}), TOKEN)
        assert _values(enabled, "nap[enabled]") == ["0", "1"]
        assert _values(disabled, "nap[enabled]") == ["0", "0"]

    def test_extended_fields_are_not_sent_on_create(self):
        draft = NapDraft.from_dict({"name": "a", "proxyAddress": "10.0.0.5", "rate_limit_cps": 40})
        form = build_create_form(draft, TOKEN, configuration_id="3")
        assert _values(form, "nap[sip_destination_ip]") == []
        assert _values(form, "nap[rate_limit_cps]") == ["0"]
        assert _values(form, "nap[configuration_id]") == ["3"]


class TestUpdateForm:

    def test_put_override_and_token_lead(self):
        form = build_update_form(NapDraft(name="a"), TOKEN)
        assert form[:3] == [("_method", "put"), ("authenticity_token", TOKEN), ("nap[name]", "a")]
        assert form[-1] == ("commit", "Save")

    def test_proxy_fields(self):
        draft = NapDraft.from_dict({"name": "a", "proxyAddress": "10.0.0.5", "proxyPort": 5080})
        form = build_update_form(draft, TOKEN)
        assert _values(form, "nap[sip_destination_ip]") == ["10.0.0.5"]
        assert _values(form, "nap[sip_destination_port]") == ["5080"]
        # use-proxy defaults to checked when an address is given
        assert _values(form, "nap_sip_cfg[sip_use_proxy]") == ["0", "1"]

    def test_defaults_when_fields_absent(self):
        form = build_update_form(NapDraft(name="a"), TOKEN)
        assert _values(form, "nap[sip_destination_port]") == ["5060"]
        assert _values(form, "nap_sip_cfg[sip_use_proxy]") == ["0"]
        assert _values(form, "nap_sip_cfg[poll_proxy]") == ["0", "1"]
        assert _values(form, "nap[congestion_threshold_period_sec_unit_conversion]") == ["60.0"]

    def test_digest_checkboxes(self):
        draft = NapDraft(name="a", fields={"sip_auth_ignore_realm": True})
        form = build_update_form(draft, TOKEN)
        assert _values(form, "nap[sip_auth_ignore_realm]") == ["0", "1"]
        assert _values(form, "nap[sip_auth_reuse_challenge]") == ["0"]

    def test_create_delays_and_nat_defaults_survive(self):
        """An update without delay or NAT input keeps what create configured."""
        form = build_update_form(NapDraft.from_dict({"name": "a", "rate_limit_cps": 40}), TOKEN)
        assert _values(form, "nap[rate_limit_delay_low]") == []
        assert _values(form, "nap[rate_limit_delay_high]") == []
        assert _values(form, "nap[rate_limit_delay_low_unit_conversion]") == []
        assert _values(form, "nap_sip_cfg[remote_nat_traversal_method_id]") == ["0"]
        assert _values(form, "nap_sip_cfg[remote_sip_nat_traversal_method_id]") == ["0"]
        assert _values(form, "nap_sip_cfg[nat_cfg_id]") == []
        assert _values(form, "nap_sip_cfg[nat_cfg_sip_id]") == []

    def test_explicit_delays_and_nat(self):
        draft = NapDraft(name="a", fields={
            "rate_limit_delay_low": 500, "rate_limit_delay_high": 900, "nat_cfg_id": "2",
        })
        form = build_update_form(draft, TOKEN)
        assert _values(form, "nap[rate_limit_delay_low]") == ["500"]
        assert _values(form, "nap[rate_limit_delay_low_unit_conversion]") == ["1.0"]
        assert _values(form, "nap[rate_limit_delay_high]") == ["900"]
        assert _values(form, "nap_sip_cfg[nat_cfg_id]") == ["2"]

    def test_rate_limits(self):
        draft = NapDraft.from_dict({"name": "a", "rate_limit_cps": 40, "max_total_calls": 200})
        form = build_update_form(draft, TOKEN)
        assert _values(form, "nap[rate_limit_cps]") == ["40"]
        assert _values(form, "nap[max_incoming_outgoing_calls]") == ["200"]

    def test_unknown_form_keys_pass_through(self):
        draft = NapDraft(name="a", fields={"nap_sip_cfg[new_option]": "7", "free text": "x"})
        form = build_update_form(draft, TOKEN)
        assert ("nap_sip_cfg[new_option]", "7") in form
        assert _values(form, "free text") == []
        assert form[-2] == ("nap[configuration_id]", "1")


class TestFormKey:

    def test_form_keys(self):
        assert is_form_key("nap[foo]")
        assert is_form_key("sip_sap[][sip_sap]")
        assert not is_form_key("foo")
        assert not is_form_key("nap[foo")
