"""
Domain models — immutable value objects for the TLS certificate inventory.

These are plain frozen dataclasses with no I/O. They describe:
  - what the decoder extracts from a certificate blob (CertificateInfo)
  - what the store persists (TLSCertificate, CertificateSource, Location, Origin)
  - who is acting (Principal) and what they want to do (Verb)

Times are UTC epoch seconds. UNBOUNDED (-1) marks a certificate without a
lower (activation) or upper (expiration) validity bound.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum, StrEnum

UNBOUNDED = -1
KEEP_TRUST = -1

TLS_CERTIFICATE = "tls_certificate"


class CertificateFormat(StrEnum):
    """Encoding the certificate blob was found in."""

    UNKNOWN = "unknown"
    DER = "DER"
    PEM = "PEM"


class Trust(IntEnum):
    """User-set trust annotation, independent of parse results."""

    UNTRUSTED = 0
    TRUSTED = 1
    UNSET = 2


class Verb(StrEnum):
    """Operations the access control gate decides on."""

    GET = "get"
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


def permission_name(verb: Verb, resource_kind: str) -> str:
    """
    Name of the permission that allows `verb` on `resource_kind`.

    Reads use the plural command name (get_tls_certificates), writes the
    singular one (modify_tls_certificate).
    """
    if verb is Verb.GET:
        return f"get_{resource_kind}s"
    return f"{verb.value}_{resource_kind}"


def is_valid(activation_time: int, expiration_time: int, now: int) -> bool:
    """Whether a validity window contains `now`; UNBOUNDED ends never exclude."""
    not_expired = expiration_time == UNBOUNDED or expiration_time >= now
    activated = activation_time == UNBOUNDED or activation_time <= now
    return not_expired and activated


def iso_time(epoch: int | None) -> str:
    """Render epoch seconds as ISO-8601 UTC; the sentinel and None render empty."""
    if epoch is None or epoch == UNBOUNDED:
        return ""
    return datetime.fromtimestamp(epoch, UTC).isoformat()


@dataclass(frozen=True, slots=True)
class Principal:
    """The acting user, with the roles it belongs to."""

    id: int
    uuid: str
    name: str
    role_ids: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class CertificateInfo:
    """
    Canonical metadata decoded from one certificate blob.

    Fingerprints are lowercase hex digests of the DER encoding, so the same
    certificate yields the same fingerprints whether it arrived as PEM or DER.
    """

    subject_dn: str
    issuer_dn: str
    serial: str
    activation_time: int
    expiration_time: int
    md5_fingerprint: str
    sha256_fingerprint: str
    certificate_format: CertificateFormat

    def is_valid_at(self, now: int) -> bool:
        return is_valid(self.activation_time, self.expiration_time, now)


@dataclass(frozen=True, slots=True)
class TLSCertificate:
    """
    A stored TLS certificate as seen through the query layer.

    `certificate` holds the base64 blob exactly as it was submitted.
    `valid` and `last_collected` are derived by the query, never stored.
    """

    id: int
    uuid: str
    owner: int | None
    owner_name: str | None
    name: str
    comment: str
    creation_time: int
    modification_time: int
    certificate: str = field(repr=False)
    subject_dn: str
    issuer_dn: str
    trust: int
    activation_time: int
    expiration_time: int
    md5_fingerprint: str
    sha256_fingerprint: str
    serial: str
    certificate_format: str
    valid: bool = False
    last_collected: int | None = None

    @property
    def activation_iso(self) -> str:
        return iso_time(self.activation_time)

    @property
    def expiration_iso(self) -> str:
        return iso_time(self.expiration_time)

    @property
    def last_collected_iso(self) -> str:
        return iso_time(self.last_collected)


@dataclass(frozen=True, slots=True)
class Location:
    """Network location a certificate was seen at, deduplicated by value."""

    uuid: str
    host_ip: str
    port: str


@dataclass(frozen=True, slots=True)
class Origin:
    """What produced an observation (e.g. a scan report), deduplicated by value."""

    uuid: str
    origin_type: str
    origin_id: str
    origin_data: str


@dataclass(frozen=True, slots=True)
class CertificateSource:
    """One observation of a certificate: when, over which TLS versions, where, by what."""

    uuid: str
    timestamp: int
    tls_versions: str
    location: Location | None = None
    origin: Origin | None = None

    @property
    def iso_timestamp(self) -> str:
        return iso_time(self.timestamp)


@dataclass(frozen=True, slots=True)
class SourceObservation:
    """Input from the ingestion collaborator describing a new observation."""

    timestamp: int
    tls_versions: str
    host_ip: str
    port: str
    origin_type: str
    origin_id: str
    origin_data: str = ""


@dataclass(frozen=True, slots=True)
class CertificatePage:
    """One window of a filtered listing, together with the filtered count."""

    rows: list[TLSCertificate] = field(default_factory=list)
    filtered: int = 0
    offset: int = 0
    limit: int | None = None
