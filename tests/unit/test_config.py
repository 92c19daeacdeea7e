"""
Unit tests for configuration — DSN resolution, query bounds, env loading.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from tls_inventory.config import AppSettings, DatabaseSettings, QuerySettings


class TestDatabaseSettings:
    def test_dsn_wins(self) -> None:
        settings = DatabaseSettings(dsn="postgresql://a:b@h:1/d", host="ignored")
        assert settings.get_dsn() == "postgresql://a:b@h:1/d"

    def test_dsn_built_from_components(self) -> None:
        """
        GIVEN host, name, username and password but no DSN
        WHEN the settings are validated
        THEN a DSN is assembled with the default port.
        """
        settings = DatabaseSettings(host="db", name="inventory", username="inv", password="secret")

        assert settings.get_dsn() == "postgresql://inv:secret@db:5432/inventory"

    def test_missing_components_named(self) -> None:
        with pytest.raises(ValidationError, match="DATABASE__PASSWORD"):
            DatabaseSettings(host="db", name="inventory", username="inv")

    def test_dsn_hidden_in_repr(self) -> None:
        settings = DatabaseSettings(dsn="postgresql://a:topsecret@h:1/d")
        assert "topsecret" not in repr(settings)


class TestQuerySettings:
    def test_defaults(self) -> None:
        assert (QuerySettings().default_rows, QuerySettings().max_rows) == (10, 1000)

    def test_max_below_default_rejected(self) -> None:
        """
        GIVEN max_rows smaller than default_rows
        WHEN validated
        THEN ValidationError.
        """
        with pytest.raises(ValidationError, match="max_rows"):
            QuerySettings(default_rows=100, max_rows=10)

    def test_zero_rows_rejected(self) -> None:
        with pytest.raises(ValidationError):
            QuerySettings(default_rows=0)


class TestAppSettings:
    def test_nested_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """
        GIVEN DATABASE__DSN, QUERY__MAX_ROWS and LOG_LEVEL in the environment
        WHEN AppSettings loads
        THEN nested fields are populated and the log level is normalized.
        """
        monkeypatch.setenv("DATABASE__DSN", "postgresql://a:b@h:1/d")
        monkeypatch.setenv("QUERY__MAX_ROWS", "200")
        monkeypatch.setenv("LOG_LEVEL", " debug ")

        settings = AppSettings()

        assert settings.database.get_dsn() == "postgresql://a:b@h:1/d"
        assert settings.query.max_rows == 200
        assert settings.query.default_rows == 10
        assert settings.server.port == 8000
        assert settings.log_level == "DEBUG"
