import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from tlsstream.certificates import (
    StoredCertificate,
    create_certificate,
    dns_name_matches,
    get_cert_friendly_name,
    get_cert_name,
    get_cert_subject,
    hex_char_to_int,
    hex_to_binary,
    match_certificate_name,
)


def _make_cert(subject_cn=None, san=None, issuer_cn=None, org=None):
    key = ec.generate_private_key(ec.SECP256R1())
    attrs = []
    if subject_cn is not None:
        attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, subject_cn))
    if org is not None:
        attrs.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, org))
    subject = x509.Name(attrs)
    issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, issuer_cn)]) if issuer_cn else subject
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=30))
    )
    if san is not None:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in san]), critical=False
        )
    return builder.sign(key, hashes.SHA256())


@pytest.fixture(scope="module")
def server_cert():
    return create_certificate("server.example.com")


@pytest.fixture(scope="module")
def client_cert():
    return create_certificate(None, "Client", "client test", True)


@pytest.mark.parametrize(
    "host, required, expected",
    [
        ("www.example.com", "www.example.com", True),
        ("WWW.Example.COM", "www.example.com", True),
        ("www.example.com", "*.example.com", True),
        ("www.example.com", "*.example.org", False),
        ("a.b.example.com", "*.example.com", False),
        ("www.example.com", "mail.example.com", False),
        ("localhost", "*.example.com", False),
    ],
)
def test_dns_name_matches(host, required, expected):
    assert dns_name_matches(host, required) is expected


@pytest.mark.parametrize("char, value", [("0", 0), ("9", 9), ("a", 10), ("F", 15), ("g", -1), (" ", -1)])
def test_hex_char_to_int(char, value):
    assert hex_char_to_int(char) == value


def test_hex_to_binary_round_trip():
    digest = bytes(range(20))
    assert hex_to_binary(digest.hex()) == digest
    assert hex_to_binary(digest.hex().upper()) == digest


def test_hex_to_binary_skips_separators_and_pads():
    spaced = " ".join(f"{b:02x}" for b in bytes(range(20)))
    assert hex_to_binary(spaced) == bytes(range(20))
    short = hex_to_binary("abcd")
    assert len(short) == 20
    assert short[:2] == b"\xab\xcd"
    assert short[2:] == bytes(18)


def test_hex_to_binary_ignores_excess():
    assert hex_to_binary("ff" * 25) == b"\xff" * 20


def test_match_certificate_name_san():
    cert = _make_cert("ignored.example.com", san=["*.example.com", "example.org"])
    assert match_certificate_name(cert, "www.example.com")
    assert match_certificate_name(cert, "example.org")
    assert not match_certificate_name(cert, "ignored.example.net")


def test_match_certificate_name_san_overrides_common_name():
    cert = _make_cert("host.example.com", san=["other.example.com"])
    assert not match_certificate_name(cert, "host.example.com")


def test_match_certificate_name_common_name(server_cert):
    assert match_certificate_name(server_cert, "server.example.com")
    assert not match_certificate_name(server_cert, "client.example.com")


def test_match_certificate_name_without_common_name():
    cert = _make_cert(org="Example Org")
    assert not match_certificate_name(cert, "example.com")


def test_create_certificate_server(server_cert):
    cert = server_cert.certificate
    assert cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == "server.example.com"
    assert server_cert.is_self_signed
    assert server_cert.has_private_key
    assert server_cert.enhanced_key_usages == [ExtendedKeyUsageOID.SERVER_AUTH.dotted_string]
    assert server_cert.allows_usage(ExtendedKeyUsageOID.SERVER_AUTH.dotted_string)
    assert not server_cert.allows_usage(ExtendedKeyUsageOID.CLIENT_AUTH.dotted_string)
    assert server_cert.friendly_name == "SSLStream Testing"
    assert server_cert.description == "SSLStream Server Test created automatically"


def test_create_certificate_client(client_cert):
    assert get_cert_subject(client_cert) == "localuser"
    assert client_cert.enhanced_key_usages == [ExtendedKeyUsageOID.CLIENT_AUTH.dotted_string]
    assert client_cert.friendly_name == "Client"
    assert client_cert.description == "client test"


def test_create_certificate_key_and_validity(server_cert):
    cert = server_cert.certificate
    pub = server_cert.private_key.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    assert pub == cert.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    start, end = cert.not_valid_before_utc, cert.not_valid_after_utc
    assert end.year - start.year == 5
    assert server_cert.private_key.key_size == 2048


def test_pem_round_trip(server_cert):
    loaded = StoredCertificate.from_pem(server_cert.to_pem(), server_cert.key_to_pem(), "x")
    assert loaded.certificate == server_cert.certificate
    assert loaded.thumbprint == server_cert.thumbprint
    assert loaded.has_private_key
    assert loaded.friendly_name == "x"


def test_key_to_pem_without_key():
    stored = StoredCertificate(_make_cert("a.example.com"))
    with pytest.raises(ValueError):
        stored.key_to_pem()


def test_thumbprint_matches_hex_to_binary(server_cert):
    assert hex_to_binary(server_cert.thumbprint.hex()) == server_cert.thumbprint


def test_names_with_distinct_friendly_name(server_cert):
    assert get_cert_subject(server_cert) == "server.example.com"
    assert get_cert_friendly_name(server_cert) == "SSLStream Testing"
    assert get_cert_name(server_cert) == 'Name="SSLStream Testing", SN="server.example.com"'


def test_names_without_friendly_name():
    stored = StoredCertificate(_make_cert("plain.example.com"))
    assert get_cert_friendly_name(stored) == "plain.example.com"
    assert get_cert_name(stored) == 'SN="plain.example.com"'


def test_get_cert_name_none():
    assert get_cert_name(None) == "<null>"


def test_subject_falls_back_to_organization():
    stored = StoredCertificate(_make_cert(org="Example Org"))
    assert get_cert_subject(stored) == "Example Org"
    assert stored.subject_name == "Example Org"


def test_not_self_signed_and_no_eku():
    stored = StoredCertificate(_make_cert("leaf.example.com", issuer_cn="Issuer"))
    assert not stored.is_self_signed
    assert stored.enhanced_key_usages is None
    assert stored.allows_usage(ExtendedKeyUsageOID.SERVER_AUTH.dotted_string)
    assert not stored.has_private_key