"""Tests for billing rule tables and add-on block counting."""

from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from rpm_billing.billing.rules import (
    CMS_2026,
    DEFAULT_RULES,
    BillingRules,
    add_on_blocks,
    rules_for_date,
    rules_for_period,
)
from rpm_billing.models.billing import BillingPeriod


class TestAddOnBlocks:
    def test_below_threshold(self):
        assert add_on_blocks(19, 20, 20, 2) == 0

    def test_at_threshold(self):
        assert add_on_blocks(20, 20, 20, 2) == 0

    def test_partial_block_not_counted(self):
        assert add_on_blocks(39, 20, 20, 2) == 0

    def test_one_full_block(self):
        assert add_on_blocks(40, 20, 20, 2) == 1

    def test_two_full_blocks(self):
        assert add_on_blocks(61, 20, 20, 2) == 2

    def test_capped(self):
        assert add_on_blocks(100, 20, 20, 2) == 2

    def test_thirty_minute_blocks(self):
        assert add_on_blocks(59, 30, 30, 2) == 0
        assert add_on_blocks(60, 30, 30, 2) == 1
        assert add_on_blocks(90, 30, 30, 2) == 2
        assert add_on_blocks(200, 30, 30, 2) == 2


class TestRuleSelection:
    def test_default_rules_are_2026(self):
        assert DEFAULT_RULES is CMS_2026
        assert CMS_2026.device_days_low == 2
        assert CMS_2026.device_days_high == 16
        assert CMS_2026.max_addon_blocks == 2

    def test_period_uses_rules_in_force_at_start(self):
        later = BillingRules(name="Later", effective_from=date(2027, 1, 1), device_days_high=12)
        rule_sets = [CMS_2026, later]

        assert rules_for_period(BillingPeriod.for_month(2026, 12), rule_sets) is CMS_2026
        assert rules_for_period(BillingPeriod.for_month(2027, 1), rule_sets) is later

    def test_dates_before_first_set_fall_back(self):
        assert rules_for_date(date(2020, 6, 1)) is CMS_2026

    def test_rules_are_immutable(self):
        with pytest.raises(PydanticValidationError):
            CMS_2026.device_days_high = 10
