#!/usr/bin/env python3
"""
HTTP API for the solar estimate calculators (basic and pro), long-term
projections and saved calculations.
"""

import logging

from flask import Flask, request, jsonify
from flask_cors import CORS

from calculation_store import CalculationStore
from config import NREL_API_KEY, NREL_TIMEOUT_SECONDS, PORT, configure_logging, load_policy
from db import init_db
from exceptions import NotFoundError, SolarGrindError, ValidationError
from financial_analysis import analyze, DEGRADATION_RATE, DISCOUNT_RATE, RATE_ESCALATION
from locations import LocationResolver, resolve_location
from models import CalculatorTier, Location, parse_float
from nrel_client import NRELClient
from solar_calculator import SolarCalculator, prepare_input

logger = logging.getLogger(__name__)

configure_logging()

app = Flask(__name__)
CORS(app)

policy = load_policy()
nrel_client = NRELClient(api_key=NREL_API_KEY, timeout=NREL_TIMEOUT_SECONDS)
location_resolver = LocationResolver(nrel_client)
store = CalculationStore()

try:
    init_db()
except Exception as e:
    logger.warning("Database initialization failed: %s", e)


@app.after_request
def add_security_headers(response):
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Content-Security-Policy'] = "frame-ancestors 'none'"
    return response


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _flag(data: dict, key: str) -> bool:
    value = data.get(key, False)
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes')
    return bool(value)


def _ok(data, status: int = 200):
    return jsonify({'success': True, 'data': data}), status


def _error(e: Exception):
    if isinstance(e, SolarGrindError):
        if e.status_code >= 500:
            logger.error("%s: %s", type(e).__name__, e.message)
        return jsonify(e.to_dict()), e.status_code
    logger.exception("Unexpected error handling %s %s", request.method, request.path)
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


def _run_calculation(data: dict, tier: CalculatorTier = None):
    calculation_input = prepare_input(data, policy, tier, location_resolver)
    calculator = SolarCalculator(tier=calculation_input.tier, policy=policy, strict=_flag(data, 'strict'))
    return calculation_input, calculator.calculate(calculation_input)


# -----------------------------------------------------------------------------
# Calculators
# -----------------------------------------------------------------------------
@app.route('/api/solar-calculation', methods=['POST'])
def basic_calculation():
    """Basic calculator: standard equipment profile"""
    try:
        _, result = _run_calculation(_json_body(), CalculatorTier.BASIC)
        return _ok(result.to_dict())
    except Exception as e:
        return _error(e)


@app.route('/api/pro-calculation', methods=['POST'])
def pro_calculation():
    """Pro calculator: panel, inverter and mounting choices apply"""
    try:
        _, result = _run_calculation(_json_body(), CalculatorTier.PRO)
        return _ok(result.to_dict())
    except Exception as e:
        return _error(e)


@app.route('/api/calculate', methods=['POST'])
def calculate():
    """
    Tier taken from the body (default pro). With `save: true` the estimate is
    stored and its id returned as `calculationId`.
    """
    try:
        data = _json_body()
        calculation_input, result = _run_calculation(data)
        payload = result.to_dict()
        if _flag(data, 'save'):
            payload['calculationId'] = store.save(
                calculation_input, result,
                user_id=data.get('userId'),
                address=data.get('address'),
            )
            return _ok(payload, 201)
        return _ok(payload)
    except Exception as e:
        return _error(e)


@app.route('/api/projection', methods=['POST'])
def projection():
    """Estimate plus the year-by-year projection, summary and monthly breakdown"""
    try:
        data = _json_body()
        _, result = _run_calculation(data)
        years = parse_float(data.get('years'), 'years')
        analysis = analyze(
            result,
            net_metering=_flag(data, 'netMetering') if 'netMetering' in data else True,
            charts=_flag(data, 'charts'),
            years=int(years) if years is not None else None,
            degradation=parse_float(data.get('degradation'), 'degradation', DEGRADATION_RATE),
            rate_escalation=parse_float(data.get('rateEscalation'), 'rateEscalation', RATE_ESCALATION),
            discount_rate=parse_float(data.get('discountRate'), 'discountRate', DISCOUNT_RATE),
        )
        return _ok({'estimate': result.to_dict(), **analysis})
    except Exception as e:
        return _error(e)


@app.route('/api/sun-hours', methods=['POST'])
def sun_hours():
    """Peak sun hours for coordinates (NREL when configured, latitude estimate otherwise)"""
    try:
        location = Location.from_dict(_json_body())
        if not location.has_coordinates and not location.region_code:
            raise ValidationError("lat and lon (or a ZIP code / state) are required")
        profile = resolve_location(location, policy, nrel_client)
        return _ok(profile.to_dict())
    except Exception as e:
        return _error(e)


# -----------------------------------------------------------------------------
# Saved calculations
# -----------------------------------------------------------------------------
@app.route('/api/calculations', methods=['GET'])
def list_calculations():
    try:
        limit = parse_float(request.args.get('limit'), 'limit', 50)
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        rows = store.list(user_id=request.args.get('userId'), limit=int(limit))
        return _ok(rows)
    except Exception as e:
        return _error(e)


@app.route('/api/calculations/<calculation_id>', methods=['GET'])
def get_calculation(calculation_id):
    try:
        row = store.get(calculation_id)
        if row is None:
            raise NotFoundError(f"Calculation {calculation_id} not found")
        return _ok(row)
    except Exception as e:
        return _error(e)


@app.route('/api/calculations/<calculation_id>', methods=['DELETE'])
def delete_calculation(calculation_id):
    try:
        if not store.delete(calculation_id):
            raise NotFoundError(f"Calculation {calculation_id} not found")
        return _ok({'id': calculation_id, 'deleted': True})
    except Exception as e:
        return _error(e)


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------
@app.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'policyEffectiveDate': policy.effective_date.isoformat()})


@app.route('/db/health', methods=['GET'])
def db_health():
    try:
        store.ping()
        return jsonify({'ok': True})
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        return jsonify({'ok': False, 'error': str(e)}), 500


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=PORT, debug=False)
