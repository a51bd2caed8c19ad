"""Certificate naming, host name matching and self-signed certificate creation."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .utilities import debug_msg

DEFAULT_SUBJECT = "localuser"
DEFAULT_FRIENDLY_NAME = "SSLStream Testing"
DEFAULT_CLIENT_DESCRIPTION = "SSL Stream Client Test created automatically"
DEFAULT_SERVER_DESCRIPTION = "SSLStream Server Test created automatically"
RSA_KEY_BITS = 2048
VALIDITY_YEARS = 5
THUMBPRINT_BYTES = 20

_HEX_VALUES = {c: int(c, 16) for c in "0123456789abcdefABCDEF"}


@dataclass
class StoredCertificate:
    """A certificate together with its private key and display properties."""

    certificate: x509.Certificate
    private_key: Optional[rsa.RSAPrivateKey] = None
    friendly_name: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_pem(
        cls,
        cert_pem: bytes,
        key_pem: Optional[bytes] = None,
        friendly_name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> StoredCertificate:
        """Load a certificate, and optionally an unencrypted key, from PEM."""
        certificate = x509.load_pem_x509_certificate(cert_pem)
        key = None
        if key_pem is not None:
            key = serialization.load_pem_private_key(key_pem, password=None)
        return cls(certificate, key, friendly_name, description)

    def to_pem(self) -> bytes:
        """Return the certificate in PEM form."""
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    def key_to_pem(self) -> bytes:
        """Return the private key as unencrypted PKCS#8 PEM."""
        if self.private_key is None:
            raise ValueError("certificate has no private key")
        return self.private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

    @property
    def has_private_key(self) -> bool:
        return self.private_key is not None

    @property
    def thumbprint(self) -> bytes:
        """The SHA-1 hash of the encoded certificate."""
        return self.certificate.fingerprint(hashes.SHA1())

    @property
    def is_self_signed(self) -> bool:
        """True when subject and issuer names are the same."""
        return self.certificate.subject == self.certificate.issuer

    @property
    def subject_name(self) -> str:
        return get_cert_subject(self)

    @property
    def enhanced_key_usages(self) -> Optional[list[str]]:
        """Dotted OIDs of the allowed usages, or None if the certificate limits none."""
        try:
            ext = self.certificate.extensions.get_extension_for_class(x509.ExtendedKeyUsage)
        except x509.ExtensionNotFound:
            return None
        return [oid.dotted_string for oid in ext.value]

    def allows_usage(self, usage_oid: str) -> bool:
        """True when the certificate may be used for the given purpose."""
        usages = self.enhanced_key_usages
        return usages is None or usage_oid in usages


def _dns_equal(left: str, right: str) -> bool:
    return left.rstrip(".").lower() == right.rstrip(".").lower()


def dns_name_matches(host_name: str, required_name: str) -> bool:
    """Match a host name against a certificate name that may start with a '*.' wildcard.

    A wildcard stands for the whole first node only.
    """
    if _dns_equal(host_name, required_name):
        return True
    if not required_name.startswith("*"):
        return False
    host_dot = host_name.find(".")
    required_dot = required_name.find(".")
    if host_dot < 0 or required_dot != 1:
        return False
    return _dns_equal(host_name[host_dot:], required_name[required_dot:])


def _as_certificate(certificate: Union[StoredCertificate, x509.Certificate]) -> x509.Certificate:
    if isinstance(certificate, StoredCertificate):
        return certificate.certificate
    return certificate


def _attribute(name: x509.Name, oid: x509.ObjectIdentifier) -> Optional[str]:
    attrs = name.get_attributes_for_oid(oid)
    if not attrs:
        return None
    value = attrs[0].value
    return value.decode("utf-8", "replace") if isinstance(value, bytes) else value


def match_certificate_name(
    certificate: Union[StoredCertificate, x509.Certificate], required_name: str
) -> bool:
    """True when the certificate's alternative DNS names, or failing those its CN, match."""
    cert = _as_certificate(certificate)
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        san = None
    if san is not None:
        return any(
            dns_name_matches(required_name, name)
            for name in san.value.get_values_for_type(x509.DNSName)
        )
    common_name = _attribute(cert.subject, NameOID.COMMON_NAME)
    if not common_name:
        return False
    return dns_name_matches(required_name, common_name)


def hex_char_to_int(char: str) -> int:
    """Return the value of one hex digit, or -1 if it is not one."""
    return _HEX_VALUES.get(char, -1)


def hex_to_binary(text: str) -> bytes:
    """Convert a thumbprint string to 20 bytes, skipping characters that are not hex digits.

    Missing trailing bytes are zero; digits beyond 20 bytes are ignored.
    """
    nibbles = [v for v in map(hex_char_to_int, text) if v >= 0]
    pairs = zip(nibbles[0::2], nibbles[1::2])
    result = bytes(high << 4 | low for high, low in pairs)[:THUMBPRINT_BYTES]
    return result.ljust(THUMBPRINT_BYTES, b"\0")


def get_cert_subject(stored: StoredCertificate) -> str:
    """Return the simple display name of the subject, or '<unknown>'."""
    subject = stored.certificate.subject
    for oid in (
        NameOID.COMMON_NAME,
        NameOID.ORGANIZATIONAL_UNIT_NAME,
        NameOID.ORGANIZATION_NAME,
        NameOID.EMAIL_ADDRESS,
    ):
        value = _attribute(subject, oid)
        if value:
            return value
    try:
        san = stored.certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return "<unknown>"
    names = san.value.get_values_for_type(x509.DNSName)
    return names[0] if names else "<unknown>"


def get_cert_friendly_name(stored: StoredCertificate) -> str:
    """Return the friendly name, falling back to the subject display name."""
    if stored.friendly_name:
        return stored.friendly_name
    return get_cert_subject(stored)


def get_cert_name(stored: Optional[StoredCertificate]) -> str:
    """Return a description of the certificate fit to show to a person."""
    if stored is None:
        return "<null>"
    subject = get_cert_subject(stored)
    friendly = get_cert_friendly_name(stored)
    name = f'Name="{friendly}", ' if friendly != subject else ""
    return name + f'SN="{subject}"'


def _add_years(moment: datetime.datetime, years: int) -> datetime.datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:  # 29 February
        return moment.replace(year=moment.year + years, day=28)


def create_certificate(
    subject: Optional[str] = None,
    friendly_name: Optional[str] = None,
    description: Optional[str] = None,
    for_client: bool = False,
) -> StoredCertificate:
    """Create a self-signed RSA certificate valid for five years.

    It is limited to client or server authentication as requested.
    """
    debug_msg("Generating RSA key pair")
    key = rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_BITS)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject or DEFAULT_SUBJECT)])
    now = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)
    usage = ExtendedKeyUsageOID.CLIENT_AUTH if for_client else ExtendedKeyUsageOID.SERVER_AUTH
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(_add_years(now, VALIDITY_YEARS))
        .add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
        .sign(key, hashes.SHA256())
    )
    if description is None:
        description = DEFAULT_CLIENT_DESCRIPTION if for_client else DEFAULT_SERVER_DESCRIPTION
    debug_msg("Self-signed certificate created")
    return StoredCertificate(
        certificate=certificate,
        private_key=key,
        friendly_name=friendly_name or DEFAULT_FRIENDLY_NAME,
        description=description,
    )