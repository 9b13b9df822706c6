"""Tests for convergence.identity: short name, domain and FQDN resolution."""

import pytest

from convergence.identity import DEFAULT_FALLBACK_DOMAIN, HostnameSpec, ResolvedIdentity, resolve
from core.errors import InvalidInput


class TestResolve:
    """Domain derivation priority and normalisation."""

    def test_fqdn_input_is_split(self):
        identity = resolve(HostnameSpec("web01.example.com"))
        assert identity == ResolvedIdentity("web01", "example.com", "web01.example.com")

    def test_bare_name_uses_fallback_domain(self):
        identity = resolve(HostnameSpec("workstation"))
        assert identity.domain == DEFAULT_FALLBACK_DOMAIN
        assert identity.fqdn == "workstation.localdomain"

    def test_spec_fallback_domain_wins_over_platform_default(self):
        identity = resolve(HostnameSpec("db01", fallback_domain="corp.lan"), platform_fallback_domain="other")
        assert identity.fqdn == "db01.corp.lan"

    def test_platform_fallback_used_when_spec_fallback_empty(self):
        identity = resolve(HostnameSpec("db01", fallback_domain=""), platform_fallback_domain="site.lan")
        assert identity.fqdn == "db01.site.lan"

    def test_explicit_domain_overrides_hostname_labels(self):
        identity = resolve(HostnameSpec("web01.example.com", explicit_domain="internal.example.org"))
        assert identity.domain == "internal.example.org"
        assert identity.fqdn == "web01.internal.example.org"

    def test_explicit_short_name_overrides_first_label(self):
        identity = resolve(HostnameSpec("web01.example.com", explicit_short_name="frontend"))
        assert identity.short_name == "frontend"
        assert identity.fqdn == "frontend.example.com"

    def test_multi_label_domain_is_kept(self):
        identity = resolve(HostnameSpec("node1.eu.prod.example.com"))
        assert identity.short_name == "node1"
        assert identity.domain == "eu.prod.example.com"

    def test_output_is_lowercase(self):
        identity = resolve(HostnameSpec("Web01.Example.COM", explicit_domain="Example.COM"))
        assert identity.fqdn == "web01.example.com"
        assert identity.short_name == "web01"

    def test_trailing_dot_is_stripped(self):
        assert resolve(HostnameSpec("web01.example.com.")).fqdn == "web01.example.com"

    def test_surrounding_whitespace_is_ignored(self):
        assert resolve(HostnameSpec("  web01.example.com  ")).fqdn == "web01.example.com"

    def test_fqdn_is_short_dot_domain(self):
        for raw in ("a", "a.b", "a.b.c", "x.y.z.w"):
            identity = resolve(HostnameSpec(raw))
            assert identity.fqdn == f"{identity.short_name}.{identity.domain}"
            assert "." not in identity.short_name

    def test_resolution_is_deterministic(self):
        spec = HostnameSpec("web01.example.com")
        assert resolve(spec) == resolve(spec)

    @pytest.mark.parametrize("spec", [
        HostnameSpec("web01.example.com"),
        HostnameSpec("Web01.Example.COM."),
        HostnameSpec("WEB01", explicit_domain="Corp.Example.ORG"),
        HostnameSpec("web01.example.com", explicit_short_name="Frontend", explicit_domain="lan"),
        HostnameSpec("workstation"),
        HostnameSpec("db01", fallback_domain="Site.LAN"),
        HostnameSpec("node1.eu.prod.example.com"),
    ])
    def test_resolved_fqdn_resolves_to_itself(self, spec):
        identity = resolve(spec)
        assert resolve(HostnameSpec(identity.fqdn)) == identity


class TestInvalidInput:
    """Inputs that must be rejected before anything is planned."""

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_hostname(self, raw):
        with pytest.raises(InvalidInput):
            resolve(HostnameSpec(raw))

    @pytest.mark.parametrize("raw", ["web..example.com", ".example.com", "web01 .example.com"])
    def test_malformed_hostname(self, raw):
        with pytest.raises(InvalidInput):
            resolve(HostnameSpec(raw))

    def test_dotted_short_name(self):
        with pytest.raises(InvalidInput):
            resolve(HostnameSpec("web01", explicit_short_name="web.01"))

    def test_blank_short_name(self):
        with pytest.raises(InvalidInput):
            resolve(HostnameSpec("web01", explicit_short_name="  "))

    def test_no_domain_anywhere(self):
        with pytest.raises(InvalidInput):
            resolve(HostnameSpec("web01", fallback_domain=""), platform_fallback_domain="")

    def test_malformed_explicit_domain(self):
        with pytest.raises(InvalidInput):
            resolve(HostnameSpec("web01", explicit_domain="example..com"))
