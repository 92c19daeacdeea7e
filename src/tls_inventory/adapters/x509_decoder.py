"""
X.509 decoder adapter — certificate blob → CertificateInfo.

Adapter layer — implements the CertificateDecoder port using:
  - asn1crypto: PEM armor detection and unarmoring
  - cryptography (PyCA): X.509 parsing, DN rendering and fingerprints

Pipeline:
  blob (base64 text, or PEM text as is)
    → base64 decode                       ("not base64" on failure/empty)
    → DER parse, or PEM unarmor + DER parse ("invalid certificate" on failure)
    → CertificateInfo (domain model)

Fingerprints are digests of the DER encoding, rendered as lowercase hex.
Serials are uppercase hex padded to whole bytes. DNs are RFC 4514 strings.

Validity bounds map to UTC epoch seconds, with two sentinels (UNBOUNDED):
  - notAfter 99991231235959Z, "no well-defined expiration date" (RFC 5280 §4.1.2.5)
  - notBefore before the Unix epoch, which has no distinct epoch encoding
"""

from __future__ import annotations

import base64
from datetime import UTC, datetime
from enum import StrEnum

import structlog
from asn1crypto import pem
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from railway import ErrorCode
from railway.result import Result

from tls_inventory.domain.models import UNBOUNDED, CertificateFormat, CertificateInfo

log = structlog.get_logger()

_NO_WELL_DEFINED_EXPIRATION = datetime(9999, 12, 31, 23, 59, 59, tzinfo=UTC)
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_CERTIFICATE_ARMOR = ("CERTIFICATE", "X509 CERTIFICATE")


class DecodeError(StrEnum):
    """Failure messages of the decoder, surfaced verbatim to callers."""

    NOT_ENCODED = "not base64"
    INVALID_CERTIFICATE = "invalid certificate"


# ─────────────────────── Transport decoding ───────────────────────


def _unwrap_transport(blob: str | bytes) -> Result[bytes]:
    """
    Undo the transport encoding of a submitted blob.

    PEM text is accepted as is. Anything else must be base64 (whitespace
    ignored) and decode to a non-empty payload.
    """
    raw = blob.encode("utf-8") if isinstance(blob, str) else bytes(blob)
    if pem.detect(raw):
        return Result.success(raw)

    compact = b"".join(raw.split())
    return Result.from_computation(
        lambda: base64.b64decode(compact, validate=True),
        ErrorCode.VALIDATION_ERROR,
        DecodeError.NOT_ENCODED.value,
    ).ensure(bool, ErrorCode.VALIDATION_ERROR, DecodeError.NOT_ENCODED.value)


# ─────────────────────── X.509 parsing ───────────────────────


def _load_certificate(payload: bytes) -> tuple[x509.Certificate, CertificateFormat]:
    """Parse DER first, PEM when the payload is armored. Raises on bad input."""
    if not pem.detect(payload):
        return x509.load_der_x509_certificate(payload), CertificateFormat.DER

    armor, _headers, der_bytes = pem.unarmor(payload)
    if armor not in _CERTIFICATE_ARMOR:
        raise ValueError(f"PEM block is not a certificate: {armor}")
    return x509.load_der_x509_certificate(der_bytes), CertificateFormat.PEM


def _serial_hex(serial_number: int) -> str:
    """Uppercase hex, left-padded to an even number of digits."""
    digits = f"{serial_number:X}"
    return digits if len(digits) % 2 == 0 else f"0{digits}"


def _activation_epoch(not_before: datetime) -> int:
    if not_before < _UNIX_EPOCH:
        return UNBOUNDED
    return int(not_before.timestamp())


def _expiration_epoch(not_after: datetime) -> int:
    if not_after >= _NO_WELL_DEFINED_EXPIRATION:
        return UNBOUNDED
    return int(not_after.timestamp())


def _certificate_info(payload: bytes) -> CertificateInfo:
    cert, certificate_format = _load_certificate(payload)
    info = CertificateInfo(
        subject_dn=cert.subject.rfc4514_string(),
        issuer_dn=cert.issuer.rfc4514_string(),
        serial=_serial_hex(cert.serial_number),
        activation_time=_activation_epoch(cert.not_valid_before_utc),
        expiration_time=_expiration_epoch(cert.not_valid_after_utc),
        md5_fingerprint=cert.fingerprint(hashes.MD5()).hex(),
        sha256_fingerprint=cert.fingerprint(hashes.SHA256()).hex(),
        certificate_format=certificate_format,
    )
    log.debug(
        "decoder.decoded",
        certificate_format=certificate_format.value,
        serial=info.serial,
        subject_dn=info.subject_dn,
    )
    return info


# ─────────────────────── Public Decoder Class ───────────────────────


class X509CertificateDecoder:
    """
    Decode certificate blobs into CertificateInfo.

    Implements the CertificateDecoder port. Stateless: one instance can be
    shared by every request.
    """

    def decode(self, blob: str | bytes) -> Result[CertificateInfo]:
        """
        Decode a submitted certificate blob.

        Returns Result.failure(VALIDATION_ERROR, "not base64") when the
        transport encoding is broken or empty, and
        Result.failure(VALIDATION_ERROR, "invalid certificate") when the
        payload is not an X.509 certificate in DER or PEM form.
        """
        return _unwrap_transport(blob).flat_map(
            lambda payload: Result.from_computation(
                lambda: _certificate_info(payload),
                ErrorCode.VALIDATION_ERROR,
                DecodeError.INVALID_CERTIFICATE.value,
            )
        )
