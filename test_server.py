#!/usr/bin/env python3
"""HTTP API: envelopes, status codes and routes (Flask test client)"""
import uuid

from solar_calculator import ROOF_LIMIT_WARNING


def test_pro_calculation(client, scenario_payload):
    resp = client.post('/api/pro-calculation', json=scenario_payload)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['success'] is True
    data = body['data']
    assert data['panelCount'] == 50
    assert data['systemSizeKw'] == 22.5
    assert data['roofUtilizationPct'] == 100
    assert data['warning'] == ROOF_LIMIT_WARNING
    assert data['tier'] == 'pro'


def test_basic_calculation_uses_standard_profile(client, scenario_payload):
    resp = client.post('/api/solar-calculation', json=scenario_payload)
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['tier'] == 'basic'
    assert data['equipmentDetails']['panelWattage'] == 400


def test_flat_form_fields(client):
    resp = client.post('/api/pro-calculation', json={
        'monthlyBill': '$120',
        'roofArea': '1,800',
        'panelType': 'polycrystalline',
        'roofOrientation': 'southeast',
        'shadingFactor': 90,
    })
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['equipmentDetails']['panelType'] == 'polycrystalline'
    assert data['equipmentDetails']['orientation'] == 'southeast'


def test_security_headers(client):
    resp = client.get('/health')
    assert resp.headers['X-Content-Type-Options'] == 'nosniff'


def test_malformed_json_is_400(client):
    resp = client.post('/api/pro-calculation', data='{not json', content_type='application/json')
    assert resp.status_code == 400
    body = resp.get_json()
    assert body['success'] is False
    assert body['error']


def test_invalid_values_are_400(client):
    for payload in (
        {'monthlyBillUSD': -5, 'roofAreaSqFt': 1000},
        {'monthlyBillUSD': 'abc', 'roofAreaSqFt': 1000},
        {'monthlyBillUSD': 100, 'roofAreaSqFt': 1000, 'shadingFactorPct': 0},
        {'monthlyBillUSD': 100, 'roofAreaSqFt': 1000, 'tier': 'platinum'},
        {'monthlyBillUSD': 100, 'roofAreaSqFt': 1000, 'lat': 120, 'lng': 0},
    ):
        resp = client.post('/api/calculate', json=payload)
        assert resp.status_code == 400, payload
        assert resp.get_json()['success'] is False


def test_strict_flag(client):
    payload = {'monthlyBillUSD': 100, 'roofAreaSqFt': 1000, 'panelType': 'perovskite'}
    assert client.post('/api/calculate', json=payload).status_code == 200
    assert client.post('/api/calculate', json={**payload, 'strict': True}).status_code == 400


def test_zip_code_fills_rate_and_sun_hours(client):
    resp = client.post('/api/calculate', json={
        'monthlyBillUSD': 100, 'roofAreaSqFt': 3000, 'zipCode': '85001',
    })
    inputs = resp.get_json()['data']['inputs']
    assert inputs['baseSunHours'] == 7.1
    assert inputs['electricityRateUSDPerKwh'] == 0.13


def test_flat_zip_alias_fills_rate_and_sun_hours(client):
    resp = client.post('/api/calculate', json={
        'monthlyBillUSD': 100, 'roofAreaSqFt': 3000, 'zip': '85001',
    })
    assert resp.status_code == 200
    inputs = resp.get_json()['data']['inputs']
    assert inputs['baseSunHours'] == 7.1
    assert inputs['electricityRateUSDPerKwh'] == 0.13


def test_unexpected_error_is_500(client, monkeypatch):
    import server

    def boom(self, calculation_input):
        raise RuntimeError('kaboom')

    monkeypatch.setattr(server.SolarCalculator, 'calculate', boom)
    resp = client.post('/api/calculate', json={'monthlyBillUSD': 100, 'roofAreaSqFt': 1000})
    assert resp.status_code == 500
    assert resp.get_json() == {'success': False, 'error': 'Internal server error'}


def test_save_get_delete_roundtrip(client):
    user_id = f"user-{uuid.uuid4()}"
    resp = client.post('/api/calculate', json={
        'monthlyBillUSD': 90, 'roofAreaSqFt': 1500, 'tier': 'basic',
        'save': True, 'userId': user_id, 'address': '42 Sunny Ave',
    })
    assert resp.status_code == 201
    calculation_id = resp.get_json()['data']['calculationId']

    listed = client.get(f'/api/calculations?userId={user_id}').get_json()['data']
    assert [row['id'] for row in listed] == [calculation_id]

    row = client.get(f'/api/calculations/{calculation_id}').get_json()['data']
    assert row['address'] == '42 Sunny Ave'
    assert row['calculationType'] == 'basic'

    assert client.delete(f'/api/calculations/{calculation_id}').status_code == 200
    missing = client.get(f'/api/calculations/{calculation_id}')
    assert missing.status_code == 404
    assert missing.get_json()['success'] is False
    assert client.delete(f'/api/calculations/{calculation_id}').status_code == 404


def test_list_rejects_bad_limit(client):
    assert client.get('/api/calculations?limit=0').status_code == 400
    assert client.get('/api/calculations?limit=abc').status_code == 400


def test_projection(client, scenario_payload):
    resp = client.post('/api/projection', json={**scenario_payload, 'years': 20, 'charts': True})
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['estimate']['panelCount'] == 50
    assert len(data['projection']) == 21
    assert len(data['monthly']) == 12
    assert data['summary']['years'] == 20
    assert data['summary']['inverterSizeKw'] == 27.0
    assert data['charts']['cashFlow'].startswith('data:image/png;base64,')


def test_projection_rejects_long_horizon(client, scenario_payload):
    resp = client.post('/api/projection', json={**scenario_payload, 'years': 3000000})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body['success'] is False
    assert 'years' in body['error']
    assert client.post('/api/projection', json={**scenario_payload, 'years': 50}).status_code == 200



def test_sun_hours(client):
    resp = client.post('/api/sun-hours', json={'lat': 40, 'lon': -105})
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['source'] == 'estimation'
    assert data['sunHours'] == 4.0

    assert client.post('/api/sun-hours', json={}).status_code == 400
    assert client.post('/api/sun-hours', json={'lat': 95, 'lon': 0}).status_code == 400


def test_health(client):
    assert client.get('/health').get_json()['status'] == 'ok'
    resp = client.get('/db/health')
    assert resp.status_code == 200
    assert resp.get_json()['ok'] is True
