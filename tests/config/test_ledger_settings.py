"""
Tests for ledger_config: YAML loading, validation and caching.
"""

from decimal import Decimal

import pytest
import yaml

from ledger_config import (
    AgingSettings,
    LedgerSettings,
    clear_settings_cache,
    get_settings,
    load_settings,
)
from ledger_config.loader import parse_settings
from ledger_kernel.domain.dtos import AccountDefinition
from ledger_kernel.models.account import SystemAccountKey


class TestBundledDefaults:
    """The shipped defaults/ledger.yaml."""

    def test_tolerances(self, settings):
        assert settings.tolerances.claim_settlement == Decimal("0.01")
        assert settings.tolerances.invoice_balance == Decimal("0.001")

    def test_chart_binds_every_system_key(self, settings):
        assert settings.mapped_keys == frozenset(SystemAccountKey)
        assert len(settings.default_chart) == 17

    def test_revenue_routing(self, settings):
        revenue = settings.revenue
        assert revenue.key_for("PHARMACY") == SystemAccountKey.REVENUE_PHARMACY
        assert revenue.key_for("bed") == SystemAccountKey.REVENUE_INPATIENT
        assert revenue.key_for("CONSULTATION") == SystemAccountKey.REVENUE_OUTPATIENT
        assert revenue.key_for(None) == SystemAccountKey.REVENUE_OUTPATIENT

    def test_checksum_is_stable(self):
        assert load_settings().checksum == load_settings().checksum

    def test_get_settings_is_cached(self):
        clear_settings_cache()
        first = get_settings()
        assert get_settings() is first
        clear_settings_cache()
        assert get_settings() is not first

    def test_load_emits_config_trace(self, captured_logs):
        settings = load_settings()

        traces = [r for r in captured_logs() if r["message"] == "LEDGER_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["checksum"] == settings.checksum


class TestOverrides:
    """Loading a deployment-specific file."""

    def test_partial_file_takes_defaults(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text(yaml.safe_dump({"aging": {"bucket_bounds": [15, 45]}}))

        loaded = load_settings(path)

        assert loaded.aging.bucket_bounds == (15, 45)
        assert loaded.tolerances.claim_settlement == Decimal("0.01")
        assert loaded.default_chart == ()

    def test_unquoted_float_rejected(self):
        with pytest.raises(ValueError, match="quoted"):
            parse_settings({"tolerances": {"claim_settlement": 0.01}})

    def test_unknown_system_key_rejected(self):
        with pytest.raises(ValueError):
            parse_settings({"revenue": {"keys_by_service_type": {"DENTAL": "revenue_dental"}}})

    def test_non_revenue_key_rejected(self):
        with pytest.raises(ValueError):
            parse_settings({"revenue": {"keys_by_service_type": {"DENTAL": "cash_main"}}})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")


class TestSchemaValidation:
    """Frozen dataclasses reject inconsistent settings."""

    def test_bucket_bounds_strictly_increasing(self):
        with pytest.raises(ValueError):
            AgingSettings(bucket_bounds=(30, 30))

    def test_duplicate_chart_code(self):
        row = AccountDefinition("100100", "Cash", "asset")
        with pytest.raises(ValueError, match="appears twice"):
            LedgerSettings(default_chart=(row, row))

    def test_system_key_bound_twice(self):
        with pytest.raises(ValueError, match="twice"):
            LedgerSettings(
                default_chart=(
                    AccountDefinition("100100", "Cash", "asset", system_key="cash_main"),
                    AccountDefinition("100200", "Cash 2", "asset", system_key="cash_main"),
                )
            )

    def test_bad_account_type(self):
        with pytest.raises(ValueError):
            LedgerSettings(default_chart=(AccountDefinition("1", "X", "goodwill"),))
