"""
Certificate service — the ROP orchestration of every TLS certificate operation.

Domain layer — no SQL and no parsing here. All I/O goes through the ports,
and every stage returns Result[T] so failures short-circuit:

  create:  may(create) → validate trust → decode → insert → get
  copy:    may(create) → resolve visible source → name free? → copy → get
  modify:  validate trust → may(modify) → resolve → may_on_resource → update → get
  delete:  may(delete) → resolve → may_on_resource → cascade delete

Mutations run inside one TransactionRunner.write call, so the permission
checks, the lookups and the row changes commit or roll back together.

Resolution policy: a resource the principal cannot see is NOT_FOUND; a
visible resource lacking the instance-level grant is AUTHORIZATION_ERROR.
"""

from __future__ import annotations

from typing import Any

import structlog
from railway import LoggingExecutionContext, ResultFailures
from railway.result import Result

from tls_inventory.domain.filters import FilterSpec
from tls_inventory.domain.models import (
    KEEP_TRUST,
    TLS_CERTIFICATE,
    CertificateInfo,
    CertificatePage,
    CertificateSource,
    Principal,
    SourceObservation,
    TLSCertificate,
    Trust,
    Verb,
    permission_name,
)
from tls_inventory.domain.ports import (
    AccessControlGate,
    CertificateDecoder,
    CertificateQuery,
    CertificateStore,
    Clock,
    TransactionRunner,
)

log = structlog.get_logger()

_DISPLAY_NAME = "TLS certificate"


def _check_trust(trust: int, allow_keep: bool = False) -> Result[int]:
    """Trust must be one of the tri-state values (or KEEP_TRUST where allowed)."""
    allowed = {t.value for t in Trust} | ({KEEP_TRUST} if allow_keep else set())
    if trust not in allowed:
        return ResultFailures.invalid_input(f"Invalid trust value: {trust}")
    return Result.success(int(trust))


def _present(value: str | None) -> str | None:
    """Treat empty strings like absent values."""
    return value if value else None


class CertificateService:
    """
    Operations on TLS certificates on behalf of an acting principal.

    Every public method is wrapped in a LoggingExecutionContext named after
    the management command it implements.
    """

    def __init__(
        self,
        store: CertificateStore,
        gate: AccessControlGate,
        query: CertificateQuery,
        decoder: CertificateDecoder,
        transactions: TransactionRunner,
        clock: Clock,
    ) -> None:
        self._store = store
        self._gate = gate
        self._query = query
        self._decoder = decoder
        self._transactions = transactions
        self._clock = clock

    # ─────────────────────── Guards ───────────────────────

    def _require(self, cur: Any, principal: Principal, verb: Verb) -> Result[bool]:
        """Coarse capability check; fails closed."""
        return self._gate.may(cur, principal, verb, TLS_CERTIFICATE).flat_map(
            lambda allowed: Result.success(allowed)
            if allowed
            else ResultFailures.permission_denied(permission_name(verb, TLS_CERTIFICATE))
        )

    def _resolve(self, cur: Any, principal: Principal, certificate_uuid: str) -> Result[int]:
        """Internal id of a certificate the principal can see, NOT_FOUND otherwise."""
        return self._gate.find_visible(cur, principal, TLS_CERTIFICATE, certificate_uuid).flat_map(
            lambda certificate_id: Result.success(certificate_id)
            if certificate_id
            else ResultFailures.not_found(_DISPLAY_NAME, certificate_uuid)
        )

    def _resolve_for(
        self, cur: Any, principal: Principal, verb: Verb, certificate_uuid: str
    ) -> Result[int]:
        """Resolve, then require the instance-level grant for `verb`."""
        return self._resolve(cur, principal, certificate_uuid).flat_map(
            lambda certificate_id: self._gate.may_on_resource(
                cur, principal, verb, TLS_CERTIFICATE, certificate_id
            ).flat_map(
                lambda allowed: Result.success(certificate_id)
                if allowed
                else ResultFailures.permission_denied(permission_name(verb, TLS_CERTIFICATE))
            )
        )

    # ─────────────────────── Create / Copy ───────────────────────

    def create(
        self,
        principal: Principal,
        certificate: str,
        name: str | None = None,
        comment: str | None = None,
        trust: int = Trust.UNSET,
    ) -> Result[TLSCertificate]:
        """
        Decode and store a new certificate owned by `principal`.

        The name defaults to the SHA-256 fingerprint and the comment to "".
        Identical certificates may be stored more than once.
        """

        def persist(cur: Any) -> Result[str]:
            return (
                self._require(cur, principal, Verb.CREATE)
                .flat_map(lambda _: _check_trust(trust))
                .flat_map(lambda _: self._decoder.decode(certificate))
                .flat_map(lambda info: self._insert(cur, principal, certificate, info, name, comment, trust))
            )

        return LoggingExecutionContext(operation="CreateTlsCertificate").execute(
            lambda: self._transactions.write(persist)
            .peek(lambda new_uuid: log.info("certificate.created", uuid=new_uuid, principal=principal.uuid))
            .flat_map(lambda new_uuid: self._query.get(principal, new_uuid))
        )

    def _insert(
        self,
        cur: Any,
        principal: Principal,
        certificate: str,
        info: CertificateInfo,
        name: str | None,
        comment: str | None,
        trust: int,
    ) -> Result[str]:
        return self._store.insert_certificate(
            cur,
            owner=principal.id,
            name=_present(name) or info.sha256_fingerprint,
            comment=comment or "",
            certificate=certificate,
            info=info,
            trust=int(trust),
            now=self._clock.now(),
        )

    def copy(
        self,
        principal: Principal,
        certificate_uuid: str,
        name: str | None = None,
        comment: str | None = None,
    ) -> Result[TLSCertificate]:
        """
        Duplicate a visible certificate into a new one owned by `principal`.

        Fingerprints, serial and validity are copied, never recomputed. An
        explicit name that the principal already uses is ALREADY_EXISTS.
        """
        new_name = _present(name)

        def duplicate(cur: Any) -> Result[str]:
            return (
                self._require(cur, principal, Verb.CREATE)
                .flat_map(lambda _: self._resolve(cur, principal, certificate_uuid))
                .flat_map(lambda source_id: self._ensure_name_free(cur, principal, new_name).map(lambda _: source_id))
                .flat_map(
                    lambda source_id: self._store.copy_certificate(
                        cur, source_id, principal.id, new_name, comment, self._clock.now()
                    )
                )
            )

        return LoggingExecutionContext(operation="CreateTlsCertificate").execute(
            lambda: self._transactions.write(duplicate)
            .peek(
                lambda new_uuid: log.info(
                    "certificate.copied", uuid=new_uuid, source=certificate_uuid, principal=principal.uuid
                )
            )
            .flat_map(lambda new_uuid: self._query.get(principal, new_uuid))
        )

    def _ensure_name_free(self, cur: Any, principal: Principal, name: str | None) -> Result[bool]:
        if name is None:
            return Result.success(True)
        return self._store.name_exists(cur, principal.id, name).flat_map(
            lambda taken: ResultFailures.already_exists(_DISPLAY_NAME, name)
            if taken
            else Result.success(True)
        )

    # ─────────────────────── Modify / Delete ───────────────────────

    def modify(
        self,
        principal: Principal,
        certificate_uuid: str,
        comment: str | None = None,
        name: str | None = None,
        trust: int = KEEP_TRUST,
    ) -> Result[TLSCertificate]:
        """
        Change the mutable fields of a certificate.

        Only supplied fields change; `trust=KEEP_TRUST` leaves trust as is.
        Certificate data itself is immutable.
        """

        def update(cur: Any) -> Result[str]:
            return (
                _check_trust(trust, allow_keep=True)
                .flat_map(lambda _: self._require(cur, principal, Verb.MODIFY))
                .flat_map(lambda _: self._resolve_for(cur, principal, Verb.MODIFY, certificate_uuid))
                .flat_map(
                    lambda certificate_id: self._store.update_certificate(
                        cur,
                        certificate_id,
                        self._clock.now(),
                        comment=comment,
                        name=_present(name),
                        trust=None if trust == KEEP_TRUST else int(trust),
                    )
                )
            )

        return LoggingExecutionContext(operation="ModifyTlsCertificate").execute(
            lambda: self._transactions.write(update)
            .peek(lambda _: log.info("certificate.modified", uuid=certificate_uuid, principal=principal.uuid))
            .flat_map(lambda _: self._query.get(principal, certificate_uuid))
        )

    def delete(self, principal: Principal, certificate_uuid: str, ultimate: bool = False) -> Result[str]:
        """
        Delete a certificate with its grants, tags and sources.

        Certificates have no trashcan: `ultimate` is accepted for symmetry
        with other resource kinds and deletion is always immediate.
        """

        def remove(cur: Any) -> Result[str]:
            return (
                self._require(cur, principal, Verb.DELETE)
                .flat_map(lambda _: self._resolve_for(cur, principal, Verb.DELETE, certificate_uuid))
                .flat_map(lambda certificate_id: self._store.delete_certificate(cur, certificate_id))
            )

        return LoggingExecutionContext(operation="DeleteTlsCertificate").execute(
            lambda: self._transactions.write(remove).peek(
                lambda deleted: log.info(
                    "certificate.deleted", uuid=deleted, principal=principal.uuid, ultimate=ultimate
                )
            )
        )

    # ─────────────────────── Principal removal ───────────────────────

    def bulk_reassign(self, owner_id: int, inheritor_id: int) -> Result[int]:
        """Move every certificate of a removed principal to its inheritor."""
        return LoggingExecutionContext(operation="InheritTlsCertificates").execute(
            lambda: self._transactions.write(
                lambda cur: self._store.reassign_owner(cur, owner_id, inheritor_id)
            )
        )

    def bulk_delete(self, owner_id: int) -> Result[int]:
        """Remove every certificate of a principal deleted without inheritor."""
        return LoggingExecutionContext(operation="DeleteUserTlsCertificates").execute(
            lambda: self._transactions.write(lambda cur: self._store.delete_owned(cur, owner_id))
        )

    # ─────────────────────── Reads ───────────────────────

    def _may_read(self, principal: Principal) -> Result[bool]:
        return self._transactions.read(lambda cur: self._require(cur, principal, Verb.GET))

    def get(self, principal: Principal, certificate_uuid: str) -> Result[TLSCertificate]:
        return LoggingExecutionContext(operation="GetTlsCertificate").execute(
            lambda: self._may_read(principal).flat_map(
                lambda _: self._query.get(principal, certificate_uuid)
            )
        )

    def enumerate(self, principal: Principal, spec: FilterSpec) -> Result[CertificatePage]:
        """
        One page of visible certificates plus the filtered total.

        Count and list share a single `now`, so a computed `valid` filter
        cannot flip between the two statements.
        """
        now = self._clock.now()
        return LoggingExecutionContext(operation="GetTlsCertificates").execute(
            lambda: self._may_read(principal)
            .flat_map(lambda _: self._query.count(principal, spec, now))
            .flat_map(
                lambda filtered: self._query.list(principal, spec, now).map(
                    lambda rows: CertificatePage(
                        rows=rows, filtered=filtered, offset=spec.offset, limit=spec.limit
                    )
                )
            )
        )

    def sources(self, principal: Principal, certificate_uuid: str) -> Result[list[CertificateSource]]:
        """Observations of a visible certificate, newest first."""
        return LoggingExecutionContext(operation="GetTlsCertificateSources").execute(
            lambda: self._transactions.read(
                lambda cur: self._require(cur, principal, Verb.GET)
                .flat_map(lambda _: self._resolve(cur, principal, certificate_uuid))
                .flat_map(lambda certificate_id: self._store.list_sources(cur, certificate_id))
            )
        )

    # ─────────────────────── Ingestion ───────────────────────

    def record_source(
        self, certificate_uuid: str, observation: SourceObservation
    ) -> Result[CertificateSource]:
        """
        Append an observation of a stored certificate.

        Called by the collection side, which acts as the system and is not
        subject to principal permissions.
        """

        def append(cur: Any) -> Result[CertificateSource]:
            return self._store.find_id(cur, certificate_uuid).flat_map(
                lambda certificate_id: self._store.insert_source(cur, certificate_id, observation)
                if certificate_id
                else ResultFailures.not_found(_DISPLAY_NAME, certificate_uuid)
            )

        return LoggingExecutionContext(operation="RecordTlsCertificateSource").execute(
            lambda: self._transactions.write(append)
        )

