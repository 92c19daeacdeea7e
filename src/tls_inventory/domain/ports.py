"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the certificate service needs without specifying HOW:

  Domain ← Ports (protocols) ← Adapters (psycopg, cryptography, asn1crypto)

Each port is a Protocol (structural typing), so adapters and test doubles
satisfy the contract just by implementing the methods.

Methods taking `cur` run on a cursor that belongs to a transaction opened by
a TransactionRunner; they never commit or roll back themselves.
Lookups answer 0 for "no such row": a Success never wraps None.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

from railway.result import Result

from tls_inventory.domain.filters import FilterSpec
from tls_inventory.domain.models import (
    CertificateInfo,
    CertificateSource,
    Principal,
    SourceObservation,
    TLSCertificate,
    Verb,
)

T = TypeVar("T")


@runtime_checkable
class CertificateDecoder(Protocol):
    """
    Port: decode a (possibly base64-encoded) certificate blob.

    Pure and deterministic. Fails with VALIDATION_ERROR "not base64" when the
    blob cannot be decoded, "invalid certificate" when it is not X.509.
    """

    def decode(self, blob: str | bytes) -> Result[CertificateInfo]: ...


@runtime_checkable
class Clock(Protocol):
    """Port: current time as UTC epoch seconds."""

    def now(self) -> int: ...


@runtime_checkable
class TransactionRunner(Protocol):
    """
    Port: run a unit of work on a database cursor.

    `write` serializes writers (immediate lock) and commits only when the
    work returns a Success; any Failure or exception rolls everything back.
    `read` runs without a lock in its own autocommit connection.
    """

    def write(self, work: Callable[[Any], Result[T]]) -> Result[T]: ...

    def read(self, work: Callable[[Any], Result[T]]) -> Result[T]: ...


@runtime_checkable
class PrincipalDirectory(Protocol):
    """Port: resolve a user UUID into the acting Principal."""

    def find(self, principal_uuid: str) -> Result[Principal]: ...


@runtime_checkable
class AccessControlGate(Protocol):
    """
    Port: permission decisions for one resource kind.

    `may` is the coarse, per-kind capability check. `find_visible` resolves a
    UUID only when the principal can see the resource (0 otherwise), and
    `may_on_resource` checks the instance-level grant for a specific verb.
    """

    def may(self, cur: Any, principal: Principal, verb: Verb, resource_kind: str) -> Result[bool]: ...

    def find_visible(
        self, cur: Any, principal: Principal, resource_kind: str, resource_uuid: str
    ) -> Result[int]: ...

    def may_on_resource(
        self, cur: Any, principal: Principal, verb: Verb, resource_kind: str, resource_id: int
    ) -> Result[bool]: ...


@runtime_checkable
class CertificateQuery(Protocol):
    """
    Port: filtered, permission-scoped reads over TLS certificates.

    `count` ignores pagination and always agrees with an unbounded `list`.
    `now` is fixed per call; pass the same value to a count/list pair to
    make them time-consistent.
    """

    def count(self, principal: Principal, spec: FilterSpec, now: int | None = None) -> Result[int]: ...

    def list(
        self, principal: Principal, spec: FilterSpec, now: int | None = None
    ) -> Result[list[TLSCertificate]]: ...

    def get(self, principal: Principal, certificate_uuid: str, now: int | None = None) -> Result[TLSCertificate]: ...


@runtime_checkable
class CertificateStore(Protocol):
    """Port: row-level persistence of certificates and their sources."""

    def insert_certificate(
        self,
        cur: Any,
        owner: int,
        name: str,
        comment: str,
        certificate: str,
        info: CertificateInfo,
        trust: int,
        now: int,
    ) -> Result[str]: ...

    def copy_certificate(
        self,
        cur: Any,
        source_id: int,
        owner: int,
        name: str | None,
        comment: str | None,
        now: int,
    ) -> Result[str]: ...

    def name_exists(self, cur: Any, owner: int, name: str) -> Result[bool]: ...

    def update_certificate(
        self,
        cur: Any,
        certificate_id: int,
        now: int,
        comment: str | None = None,
        name: str | None = None,
        trust: int | None = None,
    ) -> Result[str]: ...

    def delete_certificate(self, cur: Any, certificate_id: int) -> Result[str]: ...

    def reassign_owner(self, cur: Any, owner: int, inheritor: int) -> Result[int]: ...

    def delete_owned(self, cur: Any, owner: int) -> Result[int]: ...

    def find_id(self, cur: Any, certificate_uuid: str) -> Result[int]: ...

    def insert_source(
        self, cur: Any, certificate_id: int, observation: SourceObservation
    ) -> Result[CertificateSource]: ...

    def list_sources(self, cur: Any, certificate_id: int) -> Result[list[CertificateSource]]: ...

