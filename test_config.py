#!/usr/bin/env python3
"""SOLAR_* environment overrides for the policy constants"""
from datetime import date

import pytest

from config import load_policy
from exceptions import ValidationError
from models import PolicyConstants


def test_no_overrides_gives_defaults():
    assert load_policy(environ={}) == PolicyConstants()


def test_overrides_are_applied():
    policy = load_policy(environ={
        'SOLAR_ITC_RATE': '0.26',
        'SOLAR_DEFAULT_RATE': '0.18',
        'SOLAR_BASE_COST_PER_WATT': '$3.10',
        'SOLAR_ANALYSIS_YEARS': '20',
        'SOLAR_POLICY_EFFECTIVE_DATE': '2025-01-01',
    })
    assert policy.federal_tax_credit_rate == 0.26
    assert policy.default_electricity_rate == 0.18
    assert policy.base_cost_per_watt == 3.1
    assert policy.analysis_years == 20
    assert isinstance(policy.analysis_years, int)
    assert policy.effective_date == date(2025, 1, 1)
    # untouched fields keep their defaults
    assert policy.default_sun_hours == PolicyConstants().default_sun_hours


def test_blank_values_are_ignored():
    assert load_policy(environ={'SOLAR_ITC_RATE': '', 'SOLAR_POLICY_EFFECTIVE_DATE': ''}) == PolicyConstants()


@pytest.mark.parametrize('environ', [
    {'SOLAR_ITC_RATE': 'abc'},
    {'SOLAR_DEFAULT_SUN_HOURS': 'sunny'},
    {'SOLAR_ITC_RATE': '1.5'},
    {'SOLAR_BASE_COST_PER_WATT': '0'},
    {'SOLAR_ANALYSIS_YEARS': '0'},
    {'SOLAR_ANALYSIS_YEARS': '2.7'},
    {'SOLAR_POLICY_EFFECTIVE_DATE': '01/01/2025'},
    {'SOLAR_POLICY_EFFECTIVE_DATE': '2025-13-01'},
])
def test_bad_values_are_rejected(environ):
    with pytest.raises(ValidationError):
        load_policy(environ=environ)


def test_fractional_analysis_years_is_not_truncated():
    with pytest.raises(ValidationError, match='SOLAR_ANALYSIS_YEARS'):
        load_policy(environ={'SOLAR_ANALYSIS_YEARS': '2.7'})
    assert load_policy(environ={'SOLAR_ANALYSIS_YEARS': '30.0'}).analysis_years == 30
