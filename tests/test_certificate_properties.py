"""
Property-based tests for the X.509 helpers.

Uses Hypothesis to check public-key pins and hostname matching,
including the common-name fallback for self-signed capsule certificates.
"""

import os
import stat
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from hypothesis import given, settings
from hypothesis import strategies as st

from gemtab.certificate import (
    create_self_signed_certificate,
    generate_client_certificate,
    load_der_certificate,
    normalize_hostname,
    public_key_pin,
    verify_hostname,
)
from gemtab.exceptions import DialError


KEY = ec.generate_private_key(ec.SECP256R1())
OTHER_KEY = ec.generate_private_key(ec.SECP256R1())


def der_for(common_name: str, alt_names=(), key=KEY) -> bytes:
    cert, _ = create_self_signed_certificate(common_name, alt_names, key=key)
    return cert.public_bytes(serialization.Encoding.DER)


label_strategy = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=1, max_size=12)


@st.composite
def hostname_strategy(draw) -> str:
    labels = draw(st.lists(label_strategy, min_size=2, max_size=4))
    return ".".join(labels)


class TestPublicKeyPinProperty:
    """Property-based tests for pins."""

    @given(first=hostname_strategy(), second=hostname_strategy())
    @settings(max_examples=30)
    def test_pin_survives_reissue_with_same_key(self, first: str, second: str) -> None:
        """
        Property 1: The pin depends only on the public key.

        *For any* two certificates signed with the same key, whatever their
        names, public_key_pin SHALL return the same value.
        """
        assert public_key_pin(der_for(first, [first])) == public_key_pin(der_for(second, [second]))

    def test_pin_differs_for_other_key(self) -> None:
        assert public_key_pin(der_for("example.org")) != public_key_pin(
            der_for("example.org", key=OTHER_KEY)
        )

    def test_garbage_certificate_is_tls_error(self) -> None:
        with pytest.raises(DialError) as exc_info:
            load_der_certificate(b"not a certificate")
        assert exc_info.value.code == "tls_error"


class TestHostnameVerificationProperty:
    """Property-based tests for hostname matching."""

    @given(host=hostname_strategy())
    @settings(max_examples=30)
    def test_san_name_matches(self, host: str) -> None:
        """
        Property 2: A certificate listing a host in its SAN verifies for it,
        case-insensitively.
        """
        der = der_for("ignored", [host])
        verify_hostname(der, host)
        verify_hostname(der, host.upper())

    @given(host=hostname_strategy())
    @settings(max_examples=30)
    def test_dotted_common_name_is_used_without_san(self, host: str) -> None:
        """
        Property 3: A hostname-like CN counts as a name when the
        certificate carries no SAN extension.
        """
        verify_hostname(der_for(host), host)

    def test_undotted_common_name_is_ignored(self) -> None:
        with pytest.raises(DialError) as exc_info:
            verify_hostname(der_for("localhost"), "localhost")
        assert exc_info.value.code == "hostname_mismatch"

    @given(label=label_strategy, domain=hostname_strategy())
    @settings(max_examples=30)
    def test_wildcard_covers_one_label(self, label: str, domain: str) -> None:
        """
        Property 4: "*.domain" covers exactly one extra leftmost label.
        """
        der = der_for("wildcard", [f"*.{domain}"])

        verify_hostname(der, f"{label}.{domain}")
        with pytest.raises(DialError):
            verify_hostname(der, domain)
        with pytest.raises(DialError):
            verify_hostname(der, f"{label}.{label}.{domain}")

    def test_mismatch_raises(self) -> None:
        with pytest.raises(DialError) as exc_info:
            verify_hostname(der_for("example.org", ["example.org"]), "example.com")
        assert exc_info.value.code == "hostname_mismatch"
        assert exc_info.value.details["names"] == ["example.org"]

    def test_ip_address_san(self) -> None:
        der = der_for("local", ["127.0.0.1"])
        verify_hostname(der, "127.0.0.1")
        with pytest.raises(DialError):
            verify_hostname(der, "127.0.0.2")

    def test_idn_host_matches_punycode_name(self) -> None:
        verify_hostname(der_for("idn", ["xn--bcher-kva.example"]), "bücher.example")


class TestNormalizeHostname:
    """Tests for hostname normalization."""

    def test_ascii_host_lowercased(self) -> None:
        assert normalize_hostname("Example.ORG.") == "example.org"

    def test_unicode_host_encoded(self) -> None:
        assert normalize_hostname("BÜCHER.example") == "xn--bcher-kva.example"


class TestClientCertificateGeneration:
    """Tests for gen-cert output files."""

    def test_files_written_with_private_key_mode(self, tmp_path: Path) -> None:
        cert_file = tmp_path / "certs" / "client.crt"
        key_file = tmp_path / "certs" / "client.key"

        generate_client_certificate(cert_file, key_file, "gemtab-test", days=30, key=KEY)

        cert = x509.load_pem_x509_certificate(cert_file.read_bytes())
        assert cert.subject.rfc4514_string() == "CN=gemtab-test"
        key = serialization.load_pem_private_key(key_file.read_bytes(), password=None)
        assert key.public_key().public_numbers() == KEY.public_key().public_numbers()
        if os.name == "posix":
            assert stat.S_IMODE(key_file.stat().st_mode) == 0o600
