"""
Shared test fixtures and helpers for the tls-inventory test suite.

The fixtures directory holds three self-signed EC P-256 certificates, each
in PEM and DER form, with independently computed reference values:

  valid.*    CN=valid.example.com    2020-01-01 → 2030-01-01, serial 1A2B3C4D5E
  expired.*  CN=expired.example.com  2010-01-01 → 2015-01-01, serial 0F
  forever.*  CN=forever.example.com  2020-01-01 → 99991231235959Z, serial 0100
"""

from __future__ import annotations

import base64
from pathlib import Path

import pytest

from tls_inventory.domain.models import TLSCertificate, Trust

FIXTURES_DIR = Path(__file__).parent / "fixtures"

VALID_MD5 = "6edba1b4951457f703fc5b3a8d9d64de"
VALID_SHA256 = "f401236c7a4f30a52c6d8a104212f297d5bfe5d1acccbdc0dc4a43a0ad9827f9"
VALID_SUBJECT = "C=DE,O=Example Org,CN=valid.example.com"
VALID_NOT_BEFORE = 1577836800
VALID_NOT_AFTER = 1893456000

EXPIRED_MD5 = "9a549b5ef64c96c86122ea2b3595240d"
EXPIRED_SHA256 = "d28ab7cb7d6c5f81c344e14cff15841357c18dd3be7a34500eb91218fd91caf9"
EXPIRED_NOT_BEFORE = 1262304000
EXPIRED_NOT_AFTER = 1420070400

FOREVER_MD5 = "545b3235b391c1f08fe30f72d1b71ac1"
FOREVER_SHA256 = "8d19d7bff1f38856468e40361d110f76fdaaf51457c6543fe5f92a040193ea45"


@pytest.fixture()
def fixtures_dir() -> Path:
    """Return the absolute path to the test fixtures directory."""
    return FIXTURES_DIR


def fixture_path(filename: str) -> Path:
    """
    Resolve the absolute path to a test fixture file.

    Raises FileNotFoundError if the fixture does not exist.
    """
    path = FIXTURES_DIR / filename
    if not path.exists():
        raise FileNotFoundError(f"Test fixture not found: {path}")
    return path


def encoded_fixture(filename: str) -> str:
    """Base64 of a fixture file, the way certificates are submitted."""
    return base64.b64encode(fixture_path(filename).read_bytes()).decode("ascii")


def make_certificate(**overrides: object) -> TLSCertificate:
    """A TLSCertificate row with plausible values, fields overridable."""
    values: dict[str, object] = {
        "id": 1,
        "uuid": "c0ffee00-0000-4000-8000-000000000001",
        "owner": 7,
        "owner_name": "alice",
        "name": "web",
        "comment": "",
        "creation_time": 1_700_000_000,
        "modification_time": 1_700_000_000,
        "certificate": "MIIB",
        "subject_dn": "CN=web",
        "issuer_dn": "CN=web",
        "trust": Trust.UNSET,
        "activation_time": 1_700_000_000 - 10,
        "expiration_time": 1_700_000_000 + 10,
        "md5_fingerprint": "00",
        "sha256_fingerprint": "11",
        "serial": "01",
        "certificate_format": "DER",
    }
    values.update(overrides)
    return TLSCertificate(**values)  # type: ignore[arg-type]
