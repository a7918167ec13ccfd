"""
X.509 helpers for TOFU pinning and hostname verification.

Gemini servers mostly present self-signed certificates, so CA trust is
never consulted. What matters is the leaf certificate's public key (the
pin) and its name set (hostname verification).
"""

import base64
import datetime
import ipaddress
import os
from pathlib import Path
from typing import Iterable

import idna
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from .enums import ErrorCode
from .exceptions import DialError, ParseError


def normalize_hostname(host: str) -> str:
    """
    Lowercase a hostname and IDNA-encode it if it has non-ASCII characters.

    Raises:
        ParseError: If IDNA encoding fails
    """
    host = host.strip().rstrip(".").lower()
    if all(ord(c) < 128 for c in host):
        return host
    try:
        return idna.encode(host, uts46=True).decode("ascii")
    except idna.IDNAError as e:
        raise ParseError(
            code=ErrorCode.INVALID_URL.value,
            message=f"IDNA encoding failed: {e}",
            details={"host": host},
        )


def load_der_certificate(der: bytes) -> x509.Certificate:
    try:
        return x509.load_der_x509_certificate(der)
    except ValueError as e:
        raise DialError(
            code=ErrorCode.TLS_ERROR.value,
            message=f"Could not parse server certificate: {e}",
        )


def public_key_pin(der: bytes) -> str:
    """Base64 of the DER-encoded SubjectPublicKeyInfo of a certificate."""
    cert = load_der_certificate(der)
    spki = cert.public_key().public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(spki).decode("ascii")


def certificate_names(cert: x509.Certificate) -> tuple[set[str], set]:
    """
    Return (dns_names, ip_addresses) a certificate is valid for.

    A subject CN that looks like a hostname (contains a dot) and is not
    already listed in the SAN extension is added to the DNS names, since
    many self-signed capsule certificates only set the CN.
    """
    dns_names: set[str] = set()
    ip_addresses: set = set()
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        dns_names.update(name.lower() for name in san.get_values_for_type(x509.DNSName))
        ip_addresses.update(san.get_values_for_type(x509.IPAddress))
    except x509.ExtensionNotFound:
        pass

    common_names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if common_names:
        cn = str(common_names[0].value).lower()
        if "." in cn:
            dns_names.add(cn)
    return dns_names, ip_addresses


def _dnsname_match(pattern: str, host: str) -> bool:
    if pattern == host:
        return True
    # Wildcards cover exactly one leftmost label.
    if not pattern.startswith("*."):
        return False
    suffix = pattern[1:]
    if not host.endswith(suffix):
        return False
    label = host[: -len(suffix)]
    return bool(label) and "." not in label


def match_hostname(cert: x509.Certificate, host: str) -> bool:
    dns_names, ip_addresses = certificate_names(cert)
    try:
        address = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        address = None
    if address is not None:
        return address in ip_addresses or str(address) in dns_names

    host = normalize_hostname(host)
    return any(_dnsname_match(name, host) for name in dns_names)


def verify_hostname(der: bytes, host: str) -> None:
    """
    Raises:
        DialError: If the certificate's name set does not cover host
    """
    cert = load_der_certificate(der)
    if not match_hostname(cert, host):
        dns_names, _ = certificate_names(cert)
        raise DialError(
            code=ErrorCode.HOSTNAME_MISMATCH.value,
            message="Hostname does not match certificate common name or any alternative names.",
            details={"host": host, "names": sorted(dns_names)},
        )


def create_self_signed_certificate(
    common_name: str,
    dns_names: Iterable[str] = (),
    days: int = 365,
    key=None,
):
    """
    Build a self-signed certificate.

    Args:
        common_name: Subject and issuer CN
        dns_names: Subject alternative names; IP literals become IP entries
        days: Validity period
        key: Private key to sign with (RSA-2048 is generated when None)

    Returns:
        Tuple of (certificate, private key)
    """
    if key is None:
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=days))
    )
    alt_names = []
    for alt_name in dns_names:
        try:
            alt_names.append(x509.IPAddress(ipaddress.ip_address(alt_name)))
        except ValueError:
            alt_names.append(x509.DNSName(alt_name))
    if alt_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName(alt_names),
            critical=False,
        )
    return builder.sign(key, hashes.SHA256()), key


def certificate_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def private_key_pem(key) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def generate_client_certificate(
    cert_file: Path,
    key_file: Path,
    common_name: str,
    days: int = 365,
    key=None,
) -> None:
    """
    Write a self-signed client certificate and its private key as PEM.

    The key file is created with mode 0600.

    Raises:
        OSError: If either file cannot be written
    """
    cert, key = create_self_signed_certificate(common_name, days=days, key=key)

    key_file.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(key_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(private_key_pem(key))

    cert_file.parent.mkdir(parents=True, exist_ok=True)
    with open(cert_file, "wb") as f:
        f.write(certificate_pem(cert))
