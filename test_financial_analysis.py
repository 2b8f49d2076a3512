#!/usr/bin/env python3
"""Long-term projection, NPV/IRR and chart generation"""
import numpy as np
import pytest

from exceptions import ValidationError
from financial_analysis import (
    MAX_PROJECTION_YEARS, analyze, build_projection, calculate_irr, generate_charts_base64,
    monthly_breakdown, summarize_projection,
)
from models import CalculationInput, CalculationResult
from solar_calculator import SolarCalculator


def make_result(size=10.0, production=8000.0, rate=0.25, net_cost=10000.0, usage=12000.0):
    total = net_cost / 0.7
    monthly_offset = production / 12 * rate
    return CalculationResult(
        system_size_kw=size,
        panel_count=int(size * 1000 / 400),
        annual_production_kwh=production,
        required_roof_area_sq_ft=size * 50,
        roof_utilization_pct=50.0,
        total_cost_usd=total,
        net_cost_usd=net_cost,
        monthly_bill_offset_usd=monthly_offset,
        payback_period_years=net_cost / (monthly_offset * 12) if monthly_offset else None,
        co2_offset_tons_per_year=production * 0.0007,
        trees_equivalent=0,
        cars_off_road_equivalent=0.0,
        annual_usage_kwh=usage,
        electricity_rate_usd_per_kwh=rate,
    )


def test_monthly_breakdown_preserves_annual_totals():
    df = monthly_breakdown(12000, 9000, 0.15)
    assert len(df) == 12
    assert df['production_kwh'].sum() == pytest.approx(12000)
    assert df['consumption_kwh'].sum() == pytest.approx(9000)
    # summer peak
    assert df['production_kwh'].idxmax() in (5, 6)


def test_monthly_breakdown_net_metering_credit():
    with_credit = monthly_breakdown(12000, 9000, 0.15, net_metering=True)
    without = monthly_breakdown(12000, 9000, 0.15, net_metering=False)
    assert (without['net_metering_credit_usd'] == 0).all()
    np.testing.assert_allclose(without['savings_usd'], without['offset_kwh'] * 0.15)
    np.testing.assert_allclose(
        with_credit['savings_usd'] - without['savings_usd'],
        with_credit['excess_kwh'] * 0.15 * 0.8,
    )


def test_projection_table():
    result = make_result()
    df = build_projection(result, years=25)

    assert list(df['year']) == list(range(26))
    assert df['cash_flow_usd'].iloc[0] == pytest.approx(-10000)
    assert df['savings_usd'].iloc[1] == pytest.approx(2000)
    assert df['production_kwh'].iloc[2] == pytest.approx(8000 * 0.995)
    assert df['cumulative_cash_flow_usd'].iloc[-1] == pytest.approx(df['cash_flow_usd'].sum())


def test_rate_escalation_grows_savings():
    df = build_projection(make_result(), years=3, degradation=0.0, rate_escalation=0.03)
    assert df['savings_usd'].iloc[3] == pytest.approx(2000 * 1.03 ** 2)


def test_projection_rejects_bad_options():
    with pytest.raises(ValidationError):
        build_projection(make_result(), years=0)
    with pytest.raises(ValidationError):
        build_projection(make_result(), degradation=1.5)


def test_projection_horizon_is_capped():
    assert len(build_projection(make_result(), years=MAX_PROJECTION_YEARS)) == MAX_PROJECTION_YEARS + 1
    with pytest.raises(ValidationError):
        build_projection(make_result(), years=MAX_PROJECTION_YEARS + 1)
    with pytest.raises(ValidationError):
        analyze(make_result(), years=3000000)



def test_summary_metrics_without_degradation():
    result = make_result()
    summary = summarize_projection(build_projection(result, degradation=0.0), result)

    assert summary['years'] == 25
    assert summary['cumulativeSavingsUSD'] == pytest.approx(50000)
    assert summary['lifetimeSavingsUSD'] == pytest.approx(40000)
    assert summary['roiPct'] == pytest.approx(400.0)
    assert summary['breakEvenYear'] == 5
    # 25-year annuity at 6%
    annuity = (1 - 1.06 ** -25) / 0.06
    assert summary['npvUSD'] == pytest.approx(2000 * annuity - 10000, abs=0.01)
    assert summary['monthlyPaymentUSD'] == pytest.approx(41.67)
    assert summary['inverterSizeKw'] == pytest.approx(12.0)


def test_degradation_delays_break_even():
    result = make_result()
    summary = summarize_projection(build_projection(result), result)
    assert summary['breakEvenYear'] == 6


def test_irr_zeroes_npv():
    flows = [-10000] + [2000] * 25
    irr = calculate_irr(flows)
    assert irr is not None
    npv = sum(cf / (1 + irr) ** t for t, cf in enumerate(flows))
    assert abs(npv) < 1.0
    assert 0.19 < irr < 0.20


def test_irr_undefined_cases():
    assert calculate_irr([-100, 0, 0]) is None
    assert calculate_irr([0, 10, 10]) is None
    assert calculate_irr([-100]) is None


def test_zero_system_projection():
    result = SolarCalculator().calculate(
        CalculationInput(monthly_bill_usd=150, roof_area_sq_ft=10))
    projection = build_projection(result)
    summary = summarize_projection(projection, result)

    assert (projection['savings_usd'] == 0).all()
    assert summary['irrPct'] is None
    assert summary['roiPct'] is None
    assert summary['breakEvenYear'] is None
    assert summary['paybackPeriodYears'] is None
    assert summary['monthlyPaymentUSD'] == 0


def test_charts_are_png_data_uris():
    result = make_result()
    projection = build_projection(result, years=10)
    charts = generate_charts_base64(projection, monthly_breakdown(10000, 12000, 0.2))
    assert set(charts) == {'cashFlow', 'savings', 'monthly'}
    for uri in charts.values():
        assert uri.startswith('data:image/png;base64,')


def test_analyze_is_json_friendly():
    data = analyze(make_result(), years=5)
    assert len(data['projection']) == 6
    assert len(data['monthly']) == 12
    assert data['monthly'][0]['month'] == 'Jan'
    assert isinstance(data['projection'][1]['year'], int)
    assert 'charts' not in data
