#!/usr/bin/env python3
"""
CENTRALIZED SOLAR ESTIMATION ENGINE
===================================

Every sizing, production, cost and impact formula lives here, in one place,
so the basic and pro calculators cannot drift apart. The tier only selects
which equipment tables apply; the formula is the same for both.

Pipeline:
    resolve -> estimate_production -> solve_size -> compute_financials -> compute_impact
"""

import logging
import math
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from exceptions import ComputationError, ValidationError
from models import (
    CalculationInput, CalculationResult, CalculatorTier, EnvironmentalImpact,
    EquipmentProfile, EquipmentSelection, FinancialSummary, PolicyConstants,
    ProductionEstimate, SizingResult, normalize_choice,
)

logger = logging.getLogger(__name__)

ROOF_LIMIT_WARNING = "System size limited by available roof area"
NO_PANEL_WARNING = "Roof area too small to fit a single panel"


# ===== EQUIPMENT TABLES =====

class EquipmentTable:
    """Lookup table with a neutral default for unrecognized keys"""

    def __init__(self, name: str, values: Dict[str, float], default: float):
        self.name = name
        self.values: Mapping[str, float] = MappingProxyType(dict(values))
        self.default = default

    def lookup(self, key: str, strict: bool = False) -> float:
        key = normalize_choice(key)
        if key in self.values:
            return self.values[key]
        if strict:
            allowed = ", ".join(sorted(self.values))
            raise ValidationError(f"Unknown {self.name}: '{key}' (expected one of: {allowed})")
        return self.default


PANEL_EFFICIENCY = EquipmentTable('panel type', {
    'monocrystalline': 0.22,
    'polycrystalline': 0.18,
    'thin_film': 0.12,
}, default=0.20)

PANEL_WATTAGE = EquipmentTable('panel type', {
    'monocrystalline': 450,
    'polycrystalline': 350,
    'thin_film': 300,
}, default=400)

INVERTER_EFFICIENCY = EquipmentTable('inverter type', {
    'string': 0.96,
    'power_optimizer': 0.98,
    'microinverter': 0.95,
}, default=0.96)

MOUNTING_FACTOR = EquipmentTable('mounting type', {
    'roof_mount': 1.0,
    'ground_mount': 1.05,
    'tracking': 1.25,
}, default=1.0)

ORIENTATION_MULTIPLIER = EquipmentTable('orientation', {
    'south': 1.0,
    'southwest': 0.95,
    'southeast': 0.95,
    'west': 0.88,
    'east': 0.88,
    'north': 0.68,
}, default=0.9)

EQUIPMENT_COST_MULTIPLIER = EquipmentTable('panel type', {
    'monocrystalline': 1.2,
    'polycrystalline': 1.0,
    'thin_film': 0.8,
}, default=1.0)

INVERTER_COST_MULTIPLIER = EquipmentTable('inverter type', {
    'microinverter': 1.3,
    'power_optimizer': 1.15,
    'string': 1.0,
}, default=1.0)

MOUNTING_COST_MULTIPLIER = EquipmentTable('mounting type', {
    'tracking': 1.4,
    'ground_mount': 1.1,
    'roof_mount': 1.0,
}, default=1.0)

AREA_PER_PANEL_SQ_FT = EquipmentTable('panel type', {
    'monocrystalline': 20,
    'polycrystalline': 20,
    'thin_film': 25,
}, default=20)


class SolarCalculator:
    """One engine for every calculator tier"""

    def __init__(self, tier: CalculatorTier = CalculatorTier.PRO,
                 policy: Optional[PolicyConstants] = None, strict: bool = False):
        self.tier = CalculatorTier.parse(tier)
        self.policy = policy or PolicyConstants()
        self.strict = strict

    # ===== EQUIPMENT PROFILE =====

    def resolve(self, equipment: EquipmentSelection) -> EquipmentProfile:
        """
        Maps the categorical equipment choices to efficiency/cost multipliers.

        The basic tier ignores panel, inverter and mounting choices and uses
        the standard profile; orientation belongs to the roof and always applies.
        """
        orientation = ORIENTATION_MULTIPLIER.lookup(equipment.orientation, self.strict)

        if self.tier == CalculatorTier.BASIC:
            return EquipmentProfile(
                panel_efficiency=PANEL_EFFICIENCY.default,
                panel_wattage=PANEL_WATTAGE.default,
                inverter_efficiency=INVERTER_EFFICIENCY.default,
                mounting_factor=MOUNTING_FACTOR.default,
                orientation_multiplier=orientation,
                equipment_cost_multiplier=EQUIPMENT_COST_MULTIPLIER.default,
                inverter_cost_multiplier=INVERTER_COST_MULTIPLIER.default,
                mounting_cost_multiplier=MOUNTING_COST_MULTIPLIER.default,
                area_per_panel_sq_ft=AREA_PER_PANEL_SQ_FT.default,
            )

        panel = equipment.panel_type
        inverter = equipment.inverter_type
        mounting = equipment.mounting_type
        return EquipmentProfile(
            panel_efficiency=PANEL_EFFICIENCY.lookup(panel, self.strict),
            panel_wattage=PANEL_WATTAGE.lookup(panel, self.strict),
            inverter_efficiency=INVERTER_EFFICIENCY.lookup(inverter, self.strict),
            mounting_factor=MOUNTING_FACTOR.lookup(mounting, self.strict),
            orientation_multiplier=orientation,
            equipment_cost_multiplier=EQUIPMENT_COST_MULTIPLIER.lookup(panel, self.strict),
            inverter_cost_multiplier=INVERTER_COST_MULTIPLIER.lookup(inverter, self.strict),
            mounting_cost_multiplier=MOUNTING_COST_MULTIPLIER.lookup(mounting, self.strict),
            area_per_panel_sq_ft=AREA_PER_PANEL_SQ_FT.lookup(panel, self.strict),
        )

    # ===== PRODUCTION =====

    def estimate_production(self, profile: EquipmentProfile, shading_factor_pct: float,
                            base_sun_hours: Optional[float] = None) -> ProductionEstimate:
        """
        Effective Sun Hours = Base × Orientation × (Shading / 100) × Mounting
        System Efficiency   = Panel × Inverter × Derate (0.85)
        """
        if base_sun_hours is None:
            base_sun_hours = self.policy.default_sun_hours
        if base_sun_hours <= 0:
            raise ValidationError("Sun hours must be greater than zero")
        if shading_factor_pct < 0 or shading_factor_pct > 100:
            raise ValidationError("Shading factor must be between 0 and 100")

        effective_sun_hours = (base_sun_hours * profile.orientation_multiplier
                               * (shading_factor_pct / 100) * profile.mounting_factor)
        system_efficiency = (profile.panel_efficiency * profile.inverter_efficiency
                             * self.policy.system_loss_derate)
        return ProductionEstimate(effective_sun_hours=effective_sun_hours,
                                  system_efficiency=system_efficiency)

    # ===== SIZING =====

    def solve_size(self, calculation_input: CalculationInput, profile: EquipmentProfile,
                   production: ProductionEstimate, electricity_rate: float) -> SizingResult:
        """
        Annual Usage = Bill / Rate × 12
        Target Size  = Annual Usage / (Effective Sun Hours × 365 × Efficiency)
        Panels       = ceil(Target Size × 1000 / Wattage)

        When the panels do not fit the roof, the count is clamped to what
        fits and the size is re-derived from the clamped count.
        """
        if electricity_rate <= 0:
            raise ValidationError("Electricity rate must be greater than zero")
        per_kw = production.annual_production_per_kw
        if per_kw <= 0:
            raise ValidationError("No usable sun hours: check the shading factor")

        roof_area = calculation_input.roof_area_sq_ft
        area_per_panel = profile.area_per_panel_sq_ft

        annual_usage = (calculation_input.monthly_bill_usd / electricity_rate) * 12
        target_size_kw = annual_usage / per_kw
        target_panels = math.ceil(target_size_kw * 1000 / profile.panel_wattage)
        target_roof_area = target_panels * area_per_panel

        if target_roof_area > roof_area:
            panel_count = max(0, math.floor(roof_area / area_per_panel))
            system_size_kw = panel_count * profile.panel_wattage / 1000
            return SizingResult(
                annual_usage_kwh=annual_usage,
                target_size_kw=target_size_kw,
                system_size_kw=system_size_kw,
                panel_count=panel_count,
                target_roof_area_sq_ft=target_roof_area,
                required_roof_area_sq_ft=panel_count * area_per_panel,
                roof_utilization_pct=100.0,
                constrained=True,
            )

        return SizingResult(
            annual_usage_kwh=annual_usage,
            target_size_kw=target_size_kw,
            system_size_kw=target_size_kw,
            panel_count=target_panels,
            target_roof_area_sq_ft=target_roof_area,
            required_roof_area_sq_ft=target_roof_area,
            roof_utilization_pct=target_roof_area / roof_area * 100,
            constrained=False,
        )

    # ===== FINANCIALS =====

    def cost_per_watt(self, profile: EquipmentProfile) -> float:
        return self.policy.base_cost_per_watt * profile.cost_per_watt_multiplier

    def compute_financials(self, system_size_kw: float, annual_production_kwh: float,
                           cost_per_watt_usd: float, electricity_rate: float) -> FinancialSummary:
        """
        Total   = Size × 1000 × Cost/W
        Net     = Total − Total × ITC
        Payback = Net / (Monthly Offset × 12), undefined when nothing is offset
        """
        total_cost = system_size_kw * 1000 * cost_per_watt_usd
        tax_credit = total_cost * self.policy.federal_tax_credit_rate
        net_cost = total_cost - tax_credit
        monthly_offset = (annual_production_kwh / 12) * electricity_rate

        payback = None
        if monthly_offset > 0:
            payback = net_cost / (monthly_offset * 12)

        return FinancialSummary(
            cost_per_watt_usd=cost_per_watt_usd,
            total_cost_usd=total_cost,
            federal_tax_credit_usd=tax_credit,
            net_cost_usd=net_cost,
            monthly_bill_offset_usd=monthly_offset,
            payback_period_years=payback,
            analysis_years=self.policy.analysis_years,
        )

    # ===== ENVIRONMENTAL IMPACT =====

    def compute_impact(self, annual_production_kwh: float) -> EnvironmentalImpact:
        co2_tons = annual_production_kwh * self.policy.co2_tons_per_kwh
        return EnvironmentalImpact(
            co2_offset_tons_per_year=co2_tons,
            trees_equivalent=int(round(co2_tons * self.policy.trees_per_ton_co2)),
            cars_off_road_equivalent=co2_tons / self.policy.tons_co2_per_car,
        )

    # ===== FULL CALCULATION =====

    def validate(self, calculation_input: CalculationInput) -> None:
        if calculation_input.monthly_bill_usd <= 0:
            raise ValidationError("Monthly bill must be greater than zero")
        if calculation_input.roof_area_sq_ft <= 0:
            raise ValidationError("Roof area must be greater than zero")
        rate = calculation_input.electricity_rate_usd_per_kwh
        if rate is not None and rate <= 0:
            raise ValidationError("Electricity rate must be greater than zero")
        sun_hours = calculation_input.base_sun_hours
        if sun_hours is not None and sun_hours <= 0:
            raise ValidationError("Sun hours must be greater than zero")

    def calculate(self, calculation_input: CalculationInput) -> CalculationResult:
        """Runs the whole pipeline and returns the flat result record"""
        self.validate(calculation_input)

        rate = calculation_input.electricity_rate_usd_per_kwh or self.policy.default_electricity_rate
        sun_hours = calculation_input.base_sun_hours or self.policy.default_sun_hours

        profile = self.resolve(calculation_input.equipment)
        production = self.estimate_production(profile, calculation_input.shading_factor_pct, sun_hours)
        sizing = self.solve_size(calculation_input, profile, production, rate)

        # production is always re-derived from the final (possibly clamped) size
        annual_production = sizing.system_size_kw * production.annual_production_per_kw
        cost_per_watt = self.cost_per_watt(profile)
        financials = self.compute_financials(sizing.system_size_kw, annual_production, cost_per_watt, rate)
        impact = self.compute_impact(annual_production)

        warning = None
        if sizing.constrained:
            warning = NO_PANEL_WARNING if sizing.panel_count == 0 else ROOF_LIMIT_WARNING

        logger.debug("profile=%s production=%s", profile, production)

        result = CalculationResult(
            system_size_kw=sizing.system_size_kw,
            panel_count=sizing.panel_count,
            annual_production_kwh=annual_production,
            required_roof_area_sq_ft=sizing.required_roof_area_sq_ft,
            roof_utilization_pct=sizing.roof_utilization_pct,
            total_cost_usd=financials.total_cost_usd,
            net_cost_usd=financials.net_cost_usd,
            monthly_bill_offset_usd=financials.monthly_bill_offset_usd,
            payback_period_years=financials.payback_period_years,
            co2_offset_tons_per_year=impact.co2_offset_tons_per_year,
            trees_equivalent=impact.trees_equivalent,
            cars_off_road_equivalent=impact.cars_off_road_equivalent,
            warning=warning,
            tier=self.tier,
            constrained=sizing.constrained,
            federal_tax_credit_usd=financials.federal_tax_credit_usd,
            annual_savings_usd=financials.annual_savings_usd,
            cumulative_savings_usd=financials.cumulative_savings_usd,
            analysis_years=financials.analysis_years,
            annual_usage_kwh=sizing.annual_usage_kwh,
            effective_sun_hours=production.effective_sun_hours,
            system_efficiency=production.system_efficiency,
            electricity_rate_usd_per_kwh=rate,
            base_sun_hours=sun_hours,
            cost_per_watt_usd=cost_per_watt,
            equipment=calculation_input.equipment,
            panel_wattage=profile.panel_wattage,
            monthly_bill_usd=calculation_input.monthly_bill_usd,
            roof_area_sq_ft=calculation_input.roof_area_sq_ft,
            shading_factor_pct=calculation_input.shading_factor_pct,
        )
        self._check_finite(result)

        logger.info("%s estimate: %.2f kW, %d panels, constrained=%s",
                    self.tier.value, result.system_size_kw, result.panel_count, result.constrained)
        return result

    @staticmethod
    def _check_finite(result: CalculationResult) -> None:
        for name, value in result.numeric_fields().items():
            if value is None:
                continue
            if not math.isfinite(value):
                raise ComputationError(f"Calculation produced a non-finite value for {name}")


def calculate_solar_estimate(payload: Dict[str, Any], policy: Optional[PolicyConstants] = None,
                             tier: Optional[CalculatorTier] = None, location_resolver=None,
                             strict: bool = False) -> CalculationResult:
    """Parses a JSON body, fills sun hours / rate from the location and runs the engine"""
    policy = policy or PolicyConstants()
    calculation_input = prepare_input(payload, policy, tier, location_resolver)
    calculator = SolarCalculator(tier=calculation_input.tier, policy=policy, strict=strict)
    return calculator.calculate(calculation_input)


def _with_location_defaults(calculation_input: CalculationInput, profile) -> CalculationInput:
    """Explicit values in the request win over location-derived ones"""
    sun_hours = calculation_input.base_sun_hours
    rate = calculation_input.electricity_rate_usd_per_kwh
    return replace(
        calculation_input,
        base_sun_hours=sun_hours if sun_hours is not None else profile.base_sun_hours,
        electricity_rate_usd_per_kwh=rate if rate is not None else profile.electricity_rate,
    )


def prepare_input(payload: Dict[str, Any], policy: PolicyConstants,
                  tier: Optional[CalculatorTier] = None, location_resolver=None) -> CalculationInput:
    """
    `location_resolver` is any callable taking (Location, PolicyConstants) and
    returning an object with `base_sun_hours` and `electricity_rate`.
    """
    calculation_input = CalculationInput.from_dict(payload, tier=tier)
    if location_resolver is not None and calculation_input.location is not None:
        profile = location_resolver(calculation_input.location, policy)
        calculation_input = _with_location_defaults(calculation_input, profile)
    return calculation_input
