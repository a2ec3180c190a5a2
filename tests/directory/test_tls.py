"""Tests for per-URL TLS settings."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import ssl

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
import pytest

from credrotor.directory import TLSSettings, build_tls_settings, validate_certificate
from credrotor.errors import InvalidCertificate, InvalidConfiguration


@pytest.fixture(scope="module")
def ca_pem() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Example Test CA")])
    now = datetime.now(tz=timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")


def test_defaults_to_tls12_per_url() -> None:
    settings = build_tls_settings(["ldap://dc1.example.com", "ldaps://dc2.example.com:3269"])

    assert set(settings) == {"ldap://dc1.example.com", "ldaps://dc2.example.com:3269"}
    first = settings["ldap://dc1.example.com"]
    assert first.server_name == "dc1.example.com"
    assert first.min_version == first.max_version == ssl.TLSVersion.TLSv1_2
    assert first.insecure_skip_verify is False
    assert first.ca_certificate is None
    assert settings["ldaps://dc2.example.com:3269"].server_name == "dc2.example.com"


def test_version_bounds_are_validated() -> None:
    settings = build_tls_settings(["ldap://dc1"], min_version="tls10", max_version="TLS11")

    assert settings["ldap://dc1"].min_version == ssl.TLSVersion.TLSv1
    assert settings["ldap://dc1"].max_version == ssl.TLSVersion.TLSv1_1

    with pytest.raises(InvalidConfiguration, match="tls_min_version"):
        build_tls_settings(["ldap://dc1"], min_version="ssl3")
    with pytest.raises(InvalidConfiguration, match="greater than or equal"):
        build_tls_settings(["ldap://dc1"], min_version="tls12", max_version="tls10")


def test_unparseable_urls_are_skipped() -> None:
    settings = build_tls_settings(["ldap://dc1:99999", "not a url", "ldap://dc2"])

    assert list(settings) == ["ldap://dc2"]


def test_certificate_is_attached(ca_pem: str) -> None:
    settings = build_tls_settings(["ldaps://dc1"], certificate=ca_pem, insecure_skip_verify=True)

    assert settings["ldaps://dc1"].ca_certificate == ca_pem
    assert settings["ldaps://dc1"].insecure_skip_verify is True
    assert validate_certificate(ca_pem) == ca_pem


@pytest.mark.parametrize(
    "certificate",
    [
        "not a certificate",
        "-----BEGIN CERTIFICATE-----\nbm90IGEgY2VydA==\n-----END CERTIFICATE-----\n",
    ],
)
def test_invalid_certificates(certificate: str) -> None:
    with pytest.raises(InvalidCertificate):
        build_tls_settings(["ldaps://dc1"], certificate=certificate)


def test_certificate_bundles_are_rejected(ca_pem: str) -> None:
    with pytest.raises(InvalidCertificate):
        validate_certificate(ca_pem + ca_pem)


def test_blank_certificate_is_ignored() -> None:
    assert validate_certificate("  \n") is None


def test_ldap3_tls_object_enforces_settings(ca_pem: str) -> None:
    settings = TLSSettings(
        server_name="dc1.example.com",
        min_version=ssl.TLSVersion.TLSv1_2,
        max_version=ssl.TLSVersion.TLSv1_2,
        ca_certificate=ca_pem,
    )

    tls = settings.to_ldap3()

    assert tls.validate == ssl.CERT_REQUIRED
    assert tls.ssl_options == []
    assert tls.ca_certs_data == ca_pem
    assert tls.sni == "dc1.example.com"

    context = tls.create_context()
    assert context.minimum_version == ssl.TLSVersion.TLSv1_2
    assert context.maximum_version == ssl.TLSVersion.TLSv1_2
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.cert_store_stats()["x509_ca"] >= 1
