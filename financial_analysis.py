#!/usr/bin/env python3
"""
Long-Term Financial Analysis and Charts for Solar Estimates
===========================================================

Builds the year-by-year projection (degradation, rate escalation,
discounted cash flow) and the monthly production/consumption breakdown for
a finished estimate, plus the PNG charts shown on the results screen.

Usage:
    projection = build_projection(result)
    summary = summarize_projection(projection, result)
    charts = generate_charts_base64(projection, monthly_breakdown(...))
"""

import base64
import io
import logging
import math
from typing import Dict, List, Optional, Any

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')  # non-interactive backend, images only
import matplotlib.pyplot as plt
from matplotlib.ticker import FuncFormatter

from exceptions import ValidationError
from models import CalculationResult

logger = logging.getLogger(__name__)

# =========================
# CONSTANTS
# =========================
DEGRADATION_RATE: float = 0.005        # 0.5%/yr panel output loss
DISCOUNT_RATE: float = 0.06            # NPV discount rate
RATE_ESCALATION: float = 0.0           # utility rate growth per year
NET_METERING_CREDIT: float = 0.8       # share of retail rate paid for exported kWh
LOAN_MONTHS: int = 240                 # 20-year loan
INVERTER_SIZING_RATIO: float = 1.2
MAX_PROJECTION_YEARS: int = 50         # longest horizon build_projection accepts

IRR_INITIAL_GUESS: float = 0.1
IRR_TOLERANCE: float = 1e-4
IRR_MAX_ITERATIONS: int = 100

# Chart palette
COLOR_RED: str = "#CC0000"
COLOR_GREEN: str = "#00B398"
COLOR_ORANGE: str = "#F58634"

MONTHS: List[str] = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
                     "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

# Seasonal shapes (northern hemisphere), normalized so each sums to 12
_PRODUCTION_SHAPE = np.array([0.7, 0.8, 1.0, 1.2, 1.3, 1.4, 1.4, 1.3, 1.1, 0.9, 0.7, 0.6])
_CONSUMPTION_SHAPE = np.array([1.1, 1.0, 0.9, 0.8, 0.7, 0.8, 1.2, 1.3, 1.1, 0.9, 1.0, 1.1])
PRODUCTION_FACTORS = _PRODUCTION_SHAPE * 12 / _PRODUCTION_SHAPE.sum()
CONSUMPTION_FACTORS = _CONSUMPTION_SHAPE * 12 / _CONSUMPTION_SHAPE.sum()


# =========================
# UTILITIES
# =========================
def format_usd(value: float) -> str:
    """$1,234.56 (negative as -$1,234.56)"""
    if value is None or (isinstance(value, float) and (math.isnan(value) or math.isinf(value))):
        return "$0.00"
    if value < 0:
        return f"-${abs(value):,.2f}"
    return f"${value:,.2f}"


def usd_formatter() -> FuncFormatter:
    """Y-axis formatter for Matplotlib in USD."""
    def _fmt(x, pos):
        return format_usd(x)
    return FuncFormatter(_fmt)


def _check_rate(value: float, name: str, lower: float = 0.0, upper: float = 1.0) -> None:
    if not lower <= value < upper:
        raise ValidationError(f"{name} must be in [{lower}, {upper})")


# =========================
# MONTHLY BREAKDOWN
# =========================
def monthly_breakdown(annual_production_kwh: float, annual_usage_kwh: float,
                      electricity_rate: float, net_metering: bool = True) -> pd.DataFrame:
    """
    Splits a year of production and consumption across months.

    Savings per month = min(production, consumption) × rate, plus the
    exported excess × rate × 0.8 when net metering is available.
    """
    if electricity_rate < 0:
        raise ValidationError("Electricity rate cannot be negative")

    production = np.maximum(annual_production_kwh, 0.0) / 12 * PRODUCTION_FACTORS
    consumption = np.maximum(annual_usage_kwh, 0.0) / 12 * CONSUMPTION_FACTORS
    offset = np.minimum(production, consumption)
    excess = np.maximum(production - consumption, 0.0)
    credit = excess * electricity_rate * NET_METERING_CREDIT if net_metering else np.zeros(12)

    return pd.DataFrame({
        "month": MONTHS,
        "production_kwh": production,
        "consumption_kwh": consumption,
        "offset_kwh": offset,
        "excess_kwh": excess,
        "net_metering_credit_usd": credit,
        "savings_usd": offset * electricity_rate + credit,
    })


# =========================
# LONG-TERM PROJECTION
# =========================
def build_projection(result: CalculationResult, years: Optional[int] = None,
                     degradation: float = DEGRADATION_RATE,
                     rate_escalation: float = RATE_ESCALATION,
                     discount_rate: float = DISCOUNT_RATE) -> pd.DataFrame:
    """
    Year-by-year table. Year 0 carries the net system cost as a negative
    cash flow; years 1..N carry the savings.

    Production(y) = Production × (1 − degradation)^(y−1)
    Rate(y)       = Rate × (1 + escalation)^(y−1)
    Savings(y)    = Production(y) × Rate(y)
    """
    years = years if years is not None else result.analysis_years
    if years < 1:
        raise ValidationError("years must be at least 1")
    if years > MAX_PROJECTION_YEARS:
        raise ValidationError(f"years must be at most {MAX_PROJECTION_YEARS}")
    _check_rate(degradation, "degradation")
    _check_rate(rate_escalation, "rate_escalation")
    _check_rate(discount_rate, "discount_rate")

    year = np.arange(0, years + 1)
    n = np.maximum(year - 1, 0)
    production = np.where(year == 0, 0.0, result.annual_production_kwh * (1 - degradation) ** n)
    rate = result.electricity_rate_usd_per_kwh * (1 + rate_escalation) ** n
    savings = production * rate

    cash_flow = savings.copy()
    cash_flow[0] = -result.net_cost_usd
    discounted = cash_flow / (1 + discount_rate) ** year

    df = pd.DataFrame({
        "year": year,
        "production_kwh": production,
        "electricity_rate_usd": np.where(year == 0, 0.0, rate),
        "savings_usd": savings,
        "cumulative_savings_usd": np.cumsum(savings),
        "cash_flow_usd": cash_flow,
        "discounted_cash_flow_usd": discounted,
        "cumulative_cash_flow_usd": np.cumsum(cash_flow),
    })
    df["cumulative_cash_flow_pos_usd"] = df["cumulative_cash_flow_usd"].clip(lower=0.0)
    df["cumulative_cash_flow_neg_usd"] = df["cumulative_cash_flow_usd"].clip(upper=0.0)
    return df


def calculate_irr(cash_flows: List[float]) -> Optional[float]:
    """
    Newton iteration on NPV(rate) = Σ CF_t / (1 + rate)^t.

    Returns None when there is nothing to invest or recover, or when the
    iteration does not settle on a finite rate above -100%.
    """
    flows = np.asarray(cash_flows, dtype=float)
    if flows.size < 2 or flows[0] >= 0 or not np.any(flows[1:] > 0):
        return None

    t = np.arange(flows.size)
    rate = IRR_INITIAL_GUESS
    for _ in range(IRR_MAX_ITERATIONS):
        discount = (1 + rate) ** t
        npv = float(np.sum(flows / discount))
        if abs(npv) < IRR_TOLERANCE:
            return rate
        derivative = float(np.sum(-t * flows / ((1 + rate) ** (t + 1))))
        if derivative == 0 or not math.isfinite(derivative):
            return None
        new_rate = rate - npv / derivative
        if not math.isfinite(new_rate) or new_rate <= -1:
            return None
        if abs(new_rate - rate) < IRR_TOLERANCE:
            return new_rate
        rate = new_rate

    logger.debug("IRR did not converge for cash flows %s", flows.tolist())
    return None


def summarize_projection(projection: pd.DataFrame, result: CalculationResult) -> Dict[str, Any]:
    """
    Headline metrics for the projection table.

    ROI           = (Cumulative Savings − Net Cost) / Net Cost × 100
    Break-even    = first year the cumulative cash flow reaches zero
    Monthly loan  = Net Cost / 240
    Inverter size = 1.2 × System Size
    """
    net_cost = result.net_cost_usd
    operating = projection[projection["year"] >= 1]
    cumulative_savings = float(operating["savings_usd"].sum())
    npv = float(projection["discounted_cash_flow_usd"].sum())

    roi = None
    if net_cost > 0:
        roi = (cumulative_savings - net_cost) / net_cost * 100

    break_even = None
    if cumulative_savings > 0:
        reached = operating[operating["cumulative_cash_flow_usd"] >= 0]
        if not reached.empty:
            break_even = int(reached["year"].iloc[0])

    irr = calculate_irr(projection["cash_flow_usd"].tolist())

    return {
        "years": int(operating["year"].max()) if not operating.empty else 0,
        "firstYearSavingsUSD": round(float(operating["savings_usd"].iloc[0]), 2) if not operating.empty else 0.0,
        "cumulativeSavingsUSD": round(cumulative_savings, 2),
        "lifetimeSavingsUSD": round(cumulative_savings - net_cost, 2),
        "npvUSD": round(npv, 2),
        "irrPct": round(irr * 100, 2) if irr is not None else None,
        "roiPct": round(roi, 1) if roi is not None else None,
        "breakEvenYear": break_even,
        "paybackPeriodYears": (round(result.payback_period_years, 1)
                               if result.payback_period_years is not None else None),
        "monthlyPaymentUSD": round(net_cost / LOAN_MONTHS, 2),
        "inverterSizeKw": round(result.system_size_kw * INVERTER_SIZING_RATIO, 2),
    }


def dataframe_to_records(df: pd.DataFrame, decimals: int = 2) -> List[Dict[str, Any]]:
    """JSON-friendly rows (numpy scalars converted, floats rounded)"""
    rounded = df.round(decimals)
    records = []
    for row in rounded.to_dict(orient="records"):
        records.append({k: (v.item() if isinstance(v, np.generic) else v) for k, v in row.items()})
    return records


# =========================
# CHARTS
# =========================
def _fig_to_data_uri(fig: plt.Figure) -> str:
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=100, bbox_inches="tight")
    buf.seek(0)
    b64 = base64.b64encode(buf.getvalue()).decode("utf-8")
    plt.close(fig)
    return f"data:image/png;base64,{b64}"


def generate_charts_base64(projection: pd.DataFrame,
                           monthly: Optional[pd.DataFrame] = None) -> Dict[str, str]:
    """
    Renders the charts as base64 PNG data URIs:
    - cashFlow: cumulative cash flow (green positive / red negative bars)
    - savings: annual savings line
    - monthly: production vs consumption, grouped bars (when `monthly` is given)
    """
    yfmt = usd_formatter()
    charts: Dict[str, str] = {}

    # Chart 1 - cumulative cash flow
    fig1, ax1 = plt.subplots(figsize=(12, 6))
    ax1.bar(projection["year"], projection["cumulative_cash_flow_pos_usd"], color=COLOR_GREEN, label="Positive")
    ax1.bar(projection["year"], projection["cumulative_cash_flow_neg_usd"], color=COLOR_RED, label="Negative")
    ax1.axhline(0, color="black", linewidth=1)
    ax1.set_title("Cumulative cash flow")
    ax1.set_xlabel("Year")
    ax1.set_ylabel("USD")
    ax1.yaxis.set_major_formatter(yfmt)
    ax1.legend()
    fig1.tight_layout()
    charts["cashFlow"] = _fig_to_data_uri(fig1)

    # Chart 2 - annual savings
    operating = projection[projection["year"] >= 1]
    fig2, ax2 = plt.subplots(figsize=(12, 6))
    ax2.plot(operating["year"], operating["savings_usd"], color=COLOR_ORANGE, marker="o")
    ax2.set_title("Annual electricity savings")
    ax2.set_xlabel("Year")
    ax2.set_ylabel("USD")
    ax2.yaxis.set_major_formatter(yfmt)
    fig2.tight_layout()
    charts["savings"] = _fig_to_data_uri(fig2)

    # Chart 3 - monthly production x consumption
    if monthly is not None:
        x = range(len(monthly))
        width = 0.40
        fig3, ax3 = plt.subplots(figsize=(12, 6))
        ax3.bar([i - width / 2 for i in x], monthly["production_kwh"], width=width,
                color=COLOR_GREEN, label="Production (kWh)")
        ax3.bar([i + width / 2 for i in x], monthly["consumption_kwh"], width=width,
                color=COLOR_RED, label="Consumption (kWh)")
        ax3.set_title("Estimated monthly production x consumption")
        ax3.set_xlabel("Month")
        ax3.set_ylabel("kWh")
        ax3.set_xticks(list(x))
        ax3.set_xticklabels(monthly["month"])
        ax3.legend()
        fig3.tight_layout()
        charts["monthly"] = _fig_to_data_uri(fig3)

    return charts


def analyze(result: CalculationResult, net_metering: bool = True, charts: bool = False,
            **projection_options) -> Dict[str, Any]:
    """Projection table, summary and monthly breakdown for one estimate"""
    projection = build_projection(result, **projection_options)
    monthly = monthly_breakdown(result.annual_production_kwh, result.annual_usage_kwh,
                                result.electricity_rate_usd_per_kwh, net_metering=net_metering)
    data = {
        "summary": summarize_projection(projection, result),
        "projection": dataframe_to_records(projection),
        "monthly": dataframe_to_records(monthly),
    }
    if charts:
        data["charts"] = generate_charts_base64(projection, monthly)
    return data
