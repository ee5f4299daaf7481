"""
Tests for HospitalSetupService: chart seeding and financial year opening.
"""

from datetime import date
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import PeriodOverlapError
from ledger_kernel.models.account import SystemAccountKey
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_services.setup import HospitalSetupService


@pytest.fixture
def setup_service(session, deterministic_clock):
    return HospitalSetupService(session, clock=deterministic_clock)


class TestSeedDefaultChart:
    def test_seeds_every_account_once(
        self, session, setup_service, settings, hospital_id, test_actor_id
    ):
        assert setup_service.seed_default_chart(hospital_id, test_actor_id) == len(
            settings.default_chart
        )
        assert setup_service.seed_default_chart(hospital_id, test_actor_id) == 0

        registry = AccountRegistry(session)
        assert len(registry.list_accounts(hospital_id)) == len(settings.default_chart)
        assert registry.mappings(hospital_id)[SystemAccountKey.CASH_SHORT_OVER] == "500900"

    def test_charts_are_per_hospital(self, session, setup_service, hospital_id, test_actor_id):

        other = uuid4()
        setup_service.seed_default_chart(hospital_id, test_actor_id)
        setup_service.seed_default_chart(other, test_actor_id)

        registry = AccountRegistry(session)
        ours = registry.resolve(hospital_id, SystemAccountKey.CASH_MAIN)
        theirs = registry.resolve(other, SystemAccountKey.CASH_MAIN)
        assert ours.code == theirs.code == "100100"
        assert ours.id != theirs.id


class TestOpenFinancialYear:
    def test_twelve_open_periods(self, setup_service, hospital_id, test_actor_id):
        periods = setup_service.open_financial_year(
            hospital_id, "FY2026", date(2026, 1, 1), date(2026, 12, 31), test_actor_id
        )

        assert len(periods) == 12
        assert periods[0].period_code == "2026-01"
        assert periods[-1].end_date == date(2026, 12, 31)

    def test_overlapping_year_rejected(self, setup_service, hospital_id, test_actor_id):
        setup_service.open_financial_year(
            hospital_id, "FY2026", date(2026, 1, 1), date(2026, 12, 31), test_actor_id
        )

        with pytest.raises(PeriodOverlapError):
            setup_service.open_financial_year(
                hospital_id, "FY2026B", date(2026, 7, 1), date(2027, 6, 30), test_actor_id
            )
