#!/usr/bin/env python3
"""
Data models for the solar estimation engine.

Every record is built fresh per calculation and never mutated afterwards.
JSON interchange uses the camelCase field names expected by the frontend.
"""

import math
from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import Optional, Dict, Any

from exceptions import ValidationError


class CalculatorTier(str, Enum):
    """Which multiplier tables the engine applies"""
    BASIC = "basic"
    PRO = "pro"

    @classmethod
    def parse(cls, value: Any) -> "CalculatorTier":
        if isinstance(value, cls):
            return value
        if value in (None, ""):
            return cls.PRO
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown calculator tier: {value}")


class PanelType(str, Enum):
    MONOCRYSTALLINE = "monocrystalline"
    POLYCRYSTALLINE = "polycrystalline"
    THIN_FILM = "thin_film"


class InverterType(str, Enum):
    STRING = "string"
    POWER_OPTIMIZER = "power_optimizer"
    MICROINVERTER = "microinverter"


class MountingType(str, Enum):
    ROOF_MOUNT = "roof_mount"
    GROUND_MOUNT = "ground_mount"
    TRACKING = "tracking"


class Orientation(str, Enum):
    SOUTH = "south"
    SOUTHWEST = "southwest"
    SOUTHEAST = "southeast"
    WEST = "west"
    EAST = "east"
    NORTH = "north"


# ===== PARSING HELPERS =====

def parse_float(value: Any, field_name: str, default: Optional[float] = None) -> Optional[float]:
    """
    Converts numbers that may arrive as strings ("$1,250.00", " 150 ").

    Empty values return the default; anything else that is not a finite
    number raises ValidationError.
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        if isinstance(value, str):
            s = value.strip()
            for token in ['$', 'USD', ',', ' ']:
                s = s.replace(token, '')
            number = float(s)
        else:
            number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not math.isfinite(number):
        raise ValidationError(f"{field_name} must be a finite number")
    return number


def normalize_choice(value: Any) -> str:
    """'Power Optimizer' / 'power-optimizer' -> 'power_optimizer'"""
    if value is None:
        return ""
    return str(value).strip().lower().replace('-', '_').replace(' ', '_')


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return None


# ===== POLICY =====

@dataclass(frozen=True)
class PolicyConstants:
    """Policy values that change over time or by jurisdiction"""
    federal_tax_credit_rate: float = 0.30
    default_electricity_rate: float = 0.13
    default_sun_hours: float = 5.5
    base_cost_per_watt: float = 3.50
    system_loss_derate: float = 0.85
    co2_tons_per_kwh: float = 0.0007
    trees_per_ton_co2: float = 16.0
    tons_co2_per_car: float = 4.6
    analysis_years: int = 25
    effective_date: date = date(2024, 1, 1)

    def __post_init__(self):
        if not 0 <= self.federal_tax_credit_rate <= 1:
            raise ValidationError("federal_tax_credit_rate must be between 0 and 1")
        for name in ('default_electricity_rate', 'default_sun_hours', 'base_cost_per_watt',
                     'system_loss_derate', 'tons_co2_per_car'):
            if getattr(self, name) <= 0:
                raise ValidationError(f"{name} must be positive")
        if self.co2_tons_per_kwh < 0 or self.trees_per_ton_co2 < 0:
            raise ValidationError("emission factors cannot be negative")
        if self.analysis_years < 1:
            raise ValidationError("analysis_years must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['effective_date'] = self.effective_date.isoformat()
        return data


# ===== INPUTS =====

@dataclass(frozen=True)
class EquipmentSelection:
    panel_type: str = PanelType.MONOCRYSTALLINE.value
    inverter_type: str = InverterType.STRING.value
    mounting_type: str = MountingType.ROOF_MOUNT.value
    orientation: str = Orientation.SOUTH.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            'panelType': self.panel_type,
            'inverterType': self.inverter_type,
            'mountingType': self.mounting_type,
            'orientation': self.orientation,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'EquipmentSelection':
        data = data or {}
        defaults = cls()
        return cls(
            panel_type=normalize_choice(_pick(data, 'panelType', 'panel_type')) or defaults.panel_type,
            inverter_type=normalize_choice(_pick(data, 'inverterType', 'inverter_type')) or defaults.inverter_type,
            mounting_type=normalize_choice(_pick(data, 'mountingType', 'mounting_type')) or defaults.mounting_type,
            orientation=normalize_choice(
                _pick(data, 'orientation', 'roofOrientation', 'roof_orientation')) or defaults.orientation,
        )


# Accepted names for location fields, nested under `location` or flat in the body
LAT_KEYS = ('lat', 'latitude')
LNG_KEYS = ('lng', 'lon', 'longitude')
REGION_KEYS = ('regionCode', 'region_code', 'zipCode', 'zip', 'state')
LOCATION_KEYS = LAT_KEYS + LNG_KEYS + REGION_KEYS


@dataclass(frozen=True)
class Location:
    """Coordinates or a region code (ZIP / state), plus optional overrides"""
    lat: Optional[float] = None
    lng: Optional[float] = None
    region_code: Optional[str] = None
    base_sun_hours: Optional[float] = None
    electricity_rate: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.has_coordinates:
            data['lat'] = self.lat
            data['lng'] = self.lng
        if self.region_code:
            data['regionCode'] = self.region_code
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Optional['Location']:
        if data is None:
            return None
        if isinstance(data, str):
            return cls(region_code=data.strip() or None)
        if not isinstance(data, dict):
            raise ValidationError("location must be an object or a region code")
        region = _pick(data, *REGION_KEYS)
        return cls(
            lat=parse_float(_pick(data, *LAT_KEYS), 'location.lat'),
            lng=parse_float(_pick(data, *LNG_KEYS), 'location.lng'),
            region_code=str(region).strip() if region else None,
            base_sun_hours=parse_float(_pick(data, 'sunHours', 'baseSunHours'), 'location.sunHours'),
            electricity_rate=parse_float(_pick(data, 'electricityRate'), 'location.electricityRate'),
        )


@dataclass(frozen=True)
class CalculationInput:
    monthly_bill_usd: float
    roof_area_sq_ft: float
    location: Optional[Location] = None
    equipment: EquipmentSelection = field(default_factory=EquipmentSelection)
    shading_factor_pct: float = 100.0
    electricity_rate_usd_per_kwh: Optional[float] = None
    base_sun_hours: Optional[float] = None
    tier: CalculatorTier = CalculatorTier.PRO

    def to_dict(self) -> Dict[str, Any]:
        return {
            'monthlyBillUSD': self.monthly_bill_usd,
            'roofAreaSqFt': self.roof_area_sq_ft,
            'location': self.location.to_dict() if self.location else None,
            'equipment': self.equipment.to_dict(),
            'shadingFactorPct': self.shading_factor_pct,
            'electricityRateUSDPerKwh': self.electricity_rate_usd_per_kwh,
            'baseSunHours': self.base_sun_hours,
            'tier': self.tier.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], tier: Optional[CalculatorTier] = None) -> 'CalculationInput':
        """
        Builds an input from a JSON body.

        Accepts the nested `equipment` object or the flat field names the
        calculator forms post (panelType, roofOrientation, shadingFactor, ...).
        """
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        monthly_bill = parse_float(_pick(data, 'monthlyBillUSD', 'monthlyBill', 'monthly_bill'), 'monthlyBillUSD')
        roof_area = parse_float(_pick(data, 'roofAreaSqFt', 'roofArea', 'roof_area'), 'roofAreaSqFt')
        if monthly_bill is None:
            raise ValidationError("monthlyBillUSD is required")
        if roof_area is None:
            raise ValidationError("roofAreaSqFt is required")

        equipment_data = data.get('equipment')
        if not isinstance(equipment_data, dict):
            equipment_data = data

        location_data = data.get('location')
        if location_data is None and any(k in data for k in LOCATION_KEYS):
            location_data = {k: data[k] for k in LOCATION_KEYS if k in data}

        return cls(
            monthly_bill_usd=monthly_bill,
            roof_area_sq_ft=roof_area,
            location=Location.from_dict(location_data),
            equipment=EquipmentSelection.from_dict(equipment_data),
            shading_factor_pct=parse_float(
                _pick(data, 'shadingFactorPct', 'shadingFactor', 'shading_factor'), 'shadingFactorPct', 100.0),
            electricity_rate_usd_per_kwh=parse_float(
                _pick(data, 'electricityRateUSDPerKwh', 'electricityRate', 'electricity_rate'),
                'electricityRateUSDPerKwh'),
            base_sun_hours=parse_float(_pick(data, 'baseSunHours', 'sunHours'), 'baseSunHours'),
            tier=tier if tier is not None else CalculatorTier.parse(data.get('tier')),
        )


# ===== DERIVED RECORDS =====

@dataclass(frozen=True)
class EquipmentProfile:
    panel_efficiency: float
    panel_wattage: float
    inverter_efficiency: float
    mounting_factor: float
    orientation_multiplier: float
    equipment_cost_multiplier: float
    inverter_cost_multiplier: float
    mounting_cost_multiplier: float
    area_per_panel_sq_ft: float

    @property
    def cost_per_watt_multiplier(self) -> float:
        return self.equipment_cost_multiplier * self.inverter_cost_multiplier * self.mounting_cost_multiplier


@dataclass(frozen=True)
class ProductionEstimate:
    effective_sun_hours: float
    system_efficiency: float

    @property
    def annual_production_per_kw(self) -> float:
        return self.effective_sun_hours * 365 * self.system_efficiency


@dataclass(frozen=True)
class SizingResult:
    annual_usage_kwh: float
    target_size_kw: float
    system_size_kw: float
    panel_count: int
    target_roof_area_sq_ft: float
    required_roof_area_sq_ft: float
    roof_utilization_pct: float
    constrained: bool


@dataclass(frozen=True)
class FinancialSummary:
    cost_per_watt_usd: float
    total_cost_usd: float
    federal_tax_credit_usd: float
    net_cost_usd: float
    monthly_bill_offset_usd: float
    payback_period_years: Optional[float]
    analysis_years: int = 25

    @property
    def annual_savings_usd(self) -> float:
        return self.monthly_bill_offset_usd * 12

    def cumulative_savings(self, years: int) -> float:
        return self.annual_savings_usd * years - self.net_cost_usd

    @property
    def cumulative_savings_usd(self) -> float:
        return self.cumulative_savings(self.analysis_years)


@dataclass(frozen=True)
class EnvironmentalImpact:
    co2_offset_tons_per_year: float
    trees_equivalent: int
    cars_off_road_equivalent: float


@dataclass(frozen=True)
class CalculationResult:
    """Flat estimate returned to callers and stored by the persistence layer"""
    system_size_kw: float
    panel_count: int
    annual_production_kwh: float
    required_roof_area_sq_ft: float
    roof_utilization_pct: float
    total_cost_usd: float
    net_cost_usd: float
    monthly_bill_offset_usd: float
    payback_period_years: Optional[float]
    co2_offset_tons_per_year: float
    trees_equivalent: int
    cars_off_road_equivalent: float
    warning: Optional[str] = None

    # Supplementary detail
    tier: CalculatorTier = CalculatorTier.PRO
    constrained: bool = False
    federal_tax_credit_usd: float = 0.0
    annual_savings_usd: float = 0.0
    cumulative_savings_usd: float = 0.0
    analysis_years: int = 25
    annual_usage_kwh: float = 0.0
    effective_sun_hours: float = 0.0
    system_efficiency: float = 0.0
    electricity_rate_usd_per_kwh: float = 0.0
    base_sun_hours: float = 0.0
    cost_per_watt_usd: float = 0.0
    equipment: EquipmentSelection = field(default_factory=EquipmentSelection)
    panel_wattage: float = 0.0
    monthly_bill_usd: float = 0.0
    roof_area_sq_ft: float = 0.0
    shading_factor_pct: float = 100.0

    def numeric_fields(self) -> Dict[str, Any]:
        return {
            'systemSizeKw': self.system_size_kw,
            'panelCount': self.panel_count,
            'annualProductionKwh': self.annual_production_kwh,
            'requiredRoofAreaSqFt': self.required_roof_area_sq_ft,
            'roofUtilizationPct': self.roof_utilization_pct,
            'totalCostUSD': self.total_cost_usd,
            'netCostUSD': self.net_cost_usd,
            'monthlyBillOffsetUSD': self.monthly_bill_offset_usd,
            'paybackPeriodYears': self.payback_period_years,
            'co2OffsetTonsPerYear': self.co2_offset_tons_per_year,
            'treesEquivalent': self.trees_equivalent,
            'carsOffRoadEquivalent': self.cars_off_road_equivalent,
            'federalTaxCreditUSD': self.federal_tax_credit_usd,
            'annualSavingsUSD': self.annual_savings_usd,
            'cumulativeSavingsUSD': self.cumulative_savings_usd,
            'annualUsageKwh': self.annual_usage_kwh,
            'effectiveSunHours': self.effective_sun_hours,
            'systemEfficiency': self.system_efficiency,
        }

    def to_dict(self) -> Dict[str, Any]:
        """JSON view, rounded the way the estimate screens display it"""
        payback = self.payback_period_years
        data = {
            'systemSizeKw': round(self.system_size_kw, 2),
            'panelCount': self.panel_count,
            'annualProductionKwh': round(self.annual_production_kwh),
            'requiredRoofAreaSqFt': round(self.required_roof_area_sq_ft, 2),
            'roofUtilizationPct': round(self.roof_utilization_pct),
            'totalCostUSD': round(self.total_cost_usd, 2),
            'netCostUSD': round(self.net_cost_usd, 2),
            'monthlyBillOffsetUSD': round(self.monthly_bill_offset_usd, 2),
            'paybackPeriodYears': round(payback, 1) if payback is not None else None,
            'co2OffsetTonsPerYear': round(self.co2_offset_tons_per_year, 2),
            'treesEquivalent': self.trees_equivalent,
            'carsOffRoadEquivalent': round(self.cars_off_road_equivalent, 2),
            'federalTaxCreditUSD': round(self.federal_tax_credit_usd, 2),
            'annualSavingsUSD': round(self.annual_savings_usd, 2),
            'cumulativeSavingsUSD': round(self.cumulative_savings_usd, 2),
            'analysisYears': self.analysis_years,
            'annualUsageKwh': round(self.annual_usage_kwh),
            'effectiveSunHours': round(self.effective_sun_hours, 3),
            'systemEfficiency': round(self.system_efficiency, 4),
            'costPerWattUSD': round(self.cost_per_watt_usd, 4),
            'tier': self.tier.value,
            'constrained': self.constrained,
            'equipmentDetails': {
                **self.equipment.to_dict(),
                'panelWattage': self.panel_wattage,
                'systemEfficiency': round(self.system_efficiency * 100),
            },
            'inputs': {
                'monthlyBillUSD': self.monthly_bill_usd,
                'roofAreaSqFt': self.roof_area_sq_ft,
                'electricityRateUSDPerKwh': self.electricity_rate_usd_per_kwh,
                'baseSunHours': self.base_sun_hours,
                'shadingFactorPct': self.shading_factor_pct,
            },
        }
        if self.warning:
            data['warning'] = self.warning
        return data
