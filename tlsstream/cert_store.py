"""An in-memory certificate store with the searches a TLS endpoint needs."""

from __future__ import annotations

import datetime
from typing import Iterable, Iterator, Optional, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import ExtendedKeyUsageOID

from .certificates import (
    StoredCertificate,
    create_certificate,
    get_cert_name,
    get_cert_subject,
    hex_to_binary,
    match_certificate_name,
)
from .utilities import debug_msg

SERVER_AUTH_OID = ExtendedKeyUsageOID.SERVER_AUTH.dotted_string
CLIENT_AUTH_OID = ExtendedKeyUsageOID.CLIENT_AUTH.dotted_string
SERVER_GATED_CRYPTO_OID = "1.3.6.1.4.1.311.10.3.3"
SGC_NETSCAPE_OID = "2.16.840.1.113730.4.1"
_MAX_CHAIN_DEPTH = 16

CertificateLike = Union[StoredCertificate, x509.Certificate]


class CertificateNotFoundError(LookupError):
    """No certificate in the store satisfies the search."""


def _unwrap(certificate: CertificateLike) -> x509.Certificate:
    if isinstance(certificate, StoredCertificate):
        return certificate.certificate
    return certificate


def _validity(cert: x509.Certificate) -> tuple[datetime.datetime, datetime.datetime]:
    utc = datetime.timezone.utc
    before = getattr(cert, "not_valid_before_utc", None)
    if before is None:
        before = cert.not_valid_before.replace(tzinfo=utc)
    after = getattr(cert, "not_valid_after_utc", None)
    if after is None:
        after = cert.not_valid_after.replace(tzinfo=utc)
    return before, after


def _issued_by(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    if cert.issuer != issuer.subject:
        return False
    try:
        cert.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature):
        return False
    return True


class CertStore:
    """A collection of certificates searched in the order they were added.

    ``trusted_roots`` are the root certificates that ``cert_trusted``
    accepts at the top of a chain.
    """

    def __init__(
        self,
        certificates: Optional[Iterable[StoredCertificate]] = None,
        trusted_roots: Optional[Iterable[CertificateLike]] = None,
    ) -> None:
        self._certificates: list[StoredCertificate] = list(certificates or ())
        self._trusted_roots: list[x509.Certificate] = [
            _unwrap(root) for root in (trusted_roots or ())
        ]

    def __len__(self) -> int:
        return len(self._certificates)

    def __iter__(self) -> Iterator[StoredCertificate]:
        return iter(self._certificates)

    def add(self, stored: StoredCertificate) -> None:
        """Add a certificate, replacing one with the same thumbprint."""
        thumbprint = stored.thumbprint
        self._certificates = [c for c in self._certificates if c.thumbprint != thumbprint]
        self._certificates.append(stored)

    def find_server_certificate_by_name(self, subject_name: str) -> StoredCertificate:
        """Return the best server certificate for subject_name.

        A certificate from a proper issuer is preferred to a self-signed one.
        When nothing suitable exists, a self-signed certificate is created,
        added and returned.
        """
        if not subject_name:
            debug_msg("**** No subject name specified!")
            raise ValueError("no subject name specified")
        saved: Optional[StoredCertificate] = None
        for stored in self._certificates:
            if not stored.allows_usage(SERVER_AUTH_OID):
                continue
            debug_msg(f"Certificate {get_cert_name(stored)} is allowed to be used for server authentication.")
            if not match_certificate_name(stored, subject_name):
                debug_msg("Certificate has wrong subject name.")
            elif stored.is_self_signed:
                if saved is None:
                    debug_msg("Self-signed certificate was found and saved in case it is needed.")
                    saved = stored
            else:
                debug_msg("Certificate is acceptable.")
                return stored
        if saved is not None:
            debug_msg("Self-signed certificate was the best we had.")
            return saved
        debug_msg("**** No suitable certificate found, creating one")
        created = create_certificate(subject_name)
        self.add(created)
        return created

    def find_client_certificate(self, subject_name: Optional[str] = None) -> StoredCertificate:
        """Return a client certificate with a private key.

        One whose subject name equals subject_name is preferred; otherwise
        the last usable one is returned.
        """
        candidate: Optional[StoredCertificate] = None
        for stored in self._certificates:
            if not stored.allows_usage(CLIENT_AUTH_OID):
                continue
            debug_msg(f"Certificate {get_cert_name(stored)} is allowed to be used for client authentication.")
            if not stored.has_private_key:
                debug_msg("   Certificate is unsuitable, it has no private key")
                continue
            candidate = stored
            if subject_name is not None and get_cert_subject(stored) != subject_name:
                debug_msg("   Subject name does not match.")
            else:
                debug_msg("   Certificate is ideal, terminating search.")
                break
        if candidate is None:
            raise CertificateNotFoundError("no usable client certificate found")
        return candidate

    def _chain(self, cert: x509.Certificate) -> Optional[list[x509.Certificate]]:
        """Build the issuing chain of cert up to a self-signed root, or None."""
        pool = [s.certificate for s in self._certificates] + self._trusted_roots
        chain = [cert]
        current = cert
        for _ in range(_MAX_CHAIN_DEPTH):
            if current.issuer == current.subject:
                return chain if _issued_by(current, current) else None
            issuer = next((c for c in pool if c != current and _issued_by(current, c)), None)
            if issuer is None:
                return None
            chain.append(issuer)
            current = issuer
        return None

    def _partial_chain(self, cert: x509.Certificate) -> list[x509.Certificate]:
        pool = [s.certificate for s in self._certificates] + self._trusted_roots
        chain = [cert]
        current = cert
        for _ in range(_MAX_CHAIN_DEPTH):
            if current.issuer == current.subject:
                break
            issuer = next((c for c in pool if c != current and _issued_by(current, c)), None)
            if issuer is None:
                break
            chain.append(issuer)
            current = issuer
        return chain

    def find_from_issuer_list(self, issuers: Iterable[x509.Name]) -> StoredCertificate:
        """Return a client certificate with a private key that chains to one of issuers."""
        wanted = list(issuers)
        for stored in self._certificates:
            if not stored.has_private_key or not stored.allows_usage(CLIENT_AUTH_OID):
                continue
            if any(c.issuer in wanted for c in self._partial_chain(stored.certificate)):
                debug_msg("certificate chain found")
                return stored
        debug_msg("No certificate was found that chains to the one in the issuer list")
        raise CertificateNotFoundError("no certificate chains to the issuer list")

    def find_by_signature(self, signature: str) -> StoredCertificate:
        """Return the certificate whose SHA-1 thumbprint is given in hex."""
        thumbprint = hex_to_binary(signature)
        for stored in self._certificates:
            if stored.thumbprint == thumbprint:
                debug_msg(f"find_by_signature found certificate '{get_cert_name(stored)}'")
                if stored.is_self_signed:
                    debug_msg("A self-signed certificate was found.")
                return stored
        debug_msg("find_by_signature could not find the desired certificate.")
        raise CertificateNotFoundError("no certificate with that thumbprint")

    def find_by_name(self, subject_name: Optional[str]) -> Optional[StoredCertificate]:
        """Return the first certificate whose subject contains subject_name.

        None as the name asks for no certificate and returns None.
        """
        if subject_name is None:
            return None
        needle = subject_name.lower()
        for stored in self._certificates:
            if needle in stored.certificate.subject.rfc4514_string().lower():
                return stored
        debug_msg(f"**** No certificate found with subject containing \"{subject_name}\"")
        raise CertificateNotFoundError(f"no certificate named {subject_name!r}")

    def cert_trusted(self, stored: CertificateLike, is_client_cert: bool = False) -> bool:
        """True when the certificate chains to a trusted root and may be used as asked."""
        cert = _unwrap(stored)
        usage = CLIENT_AUTH_OID if is_client_cert else SERVER_AUTH_OID
        try:
            ext = cert.extensions.get_extension_for_class(x509.ExtendedKeyUsage)
            usages = [oid.dotted_string for oid in ext.value]
        except x509.ExtensionNotFound:
            usages = None
        if usages is not None and not any(
            u in usages for u in (usage, SERVER_GATED_CRYPTO_OID, SGC_NETSCAPE_OID)
        ):
            debug_msg("Certificate is not allowed the requested usage")
            return False
        chain = self._chain(cert)
        if chain is None:
            debug_msg("Certificate chain could not be built")
            return False
        trusted = {root.fingerprint(hashes.SHA256()) for root in self._trusted_roots}
        if chain[-1].fingerprint(hashes.SHA256()) not in trusted:
            debug_msg("Certificate chain ends in an untrusted root certificate")
            return False
        now = datetime.datetime.now(datetime.timezone.utc)
        for link in chain:
            before, after = _validity(link)
            if not before <= now <= after:
                debug_msg("A certificate in the chain is outside its validity period")
                return False
        return True