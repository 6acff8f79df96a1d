"""Tests for leadflow.routes.crm — /api/crm JSON endpoints."""
from unittest.mock import patch

import pytest

from leadflow.models.lead_activity import LeadActivity


@pytest.fixture(autouse=True)
def quiet_email():
    """Route notifications to a stub so no test reaches SendGrid."""
    with patch('leadflow.services.notifications.send', return_value={'sent': True}) as send:
        yield send


@pytest.fixture(autouse=True)
def fresh_allocator():
    from leadflow.automation.round_robin import RoundRobinAllocator
    with patch('leadflow.extensions.allocator', RoundRobinAllocator()):
        yield


class TestHealth:

    def test_returns_200(self, client):
        resp = client.get('/health')
        assert resp.status_code == 200
        assert resp.json == {'status': 'healthy'}


class TestCreateLead:

    def test_creates_with_automation(self, client, make_user, quiet_email):
        admin = make_user(name='Hugo', email='hugo@venio.fr')
        resp = client.post('/api/crm/leads', json={
            'company': 'Acme', 'budget': 15000, 'source': 'Referral',
        }, headers={'X-Actor-Id': str(admin.id)})

        assert resp.status_code == 201
        lead = resp.json['lead']
        assert lead['status'] == 'QUALIFIED'
        assert lead['assigned_to'] == admin.id
        assert lead['created_by'] == admin.id
        assert lead['alerts'] == {'cold': False, 'stale': False, 'overdue': False}
        assert resp.json['duplicates'] == []
        assert quiet_email.call_args.args[0] == 'lead_assigned'

    def test_company_required(self, client):
        resp = client.post('/api/crm/leads', json={'contact_name': 'Jane'})
        assert resp.status_code == 400
        assert resp.json['error'] == 'company is required'

    def test_invalid_status(self, client):
        resp = client.post('/api/crm/leads', json={'company': 'Acme', 'status': 'ARCHIVED'})
        assert resp.status_code == 400

    def test_duplicates_reported(self, client, make_lead):
        existing = make_lead(company='Acme Corp')
        resp = client.post('/api/crm/leads', json={'company': 'ACME CORP'})
        assert [d['id'] for d in resp.json['duplicates']] == [existing.id]

    def test_scoring_config_error_is_400(self, client, crm_settings):
        crm_settings(scoring_enabled=True, scoring_weights={'hasEmail': -1})
        resp = client.post('/api/crm/leads', json={'company': 'Acme'})
        assert resp.status_code == 400
        assert 'configuration' in resp.json['error']


class TestReadAndUpdate:

    def test_get_lead(self, client, make_lead):
        lead = make_lead(company='Acme')
        resp = client.get(f'/api/crm/leads/{lead.id}')
        assert resp.status_code == 200
        assert resp.json['lead']['company'] == 'Acme'

    def test_get_missing_lead(self, client):
        assert client.get('/api/crm/leads/999').status_code == 404

    def test_patch_to_won_converts(self, client, make_lead):
        lead = make_lead(company='Acme', status='PROPOSAL', contact_email='ceo@acme.fr')
        resp = client.patch(f'/api/crm/leads/{lead.id}', json={'status': 'WON'})
        assert resp.status_code == 200
        assert resp.json['lead']['status'] == 'WON'
        assert resp.json['lead']['client_account_id'] is not None
        assert resp.json['lead']['next_action_at'] is None

    def test_patch_missing_lead(self, client):
        assert client.patch('/api/crm/leads/999', json={'status': 'WON'}).status_code == 404

    def test_activities(self, client, make_lead):
        lead = make_lead()
        client.patch(f'/api/crm/leads/{lead.id}', json={'status': 'CONTACTED'}, headers={'X-Actor-Id': 'x'})
        resp = client.get(f'/api/crm/leads/{lead.id}/activities')
        assert resp.status_code == 200
        assert [a['type'] for a in resp.json['activities']] == ['STATUS_CHANGE']
        assert resp.json['activities'][0]['actor_id'] is None

    def test_activities_missing_lead(self, client):
        assert client.get('/api/crm/leads/999/activities').status_code == 404

    def test_list_and_filter(self, client, make_lead):
        make_lead(company='A', status='DEMO')
        make_lead(company='B', status='LEAD')
        resp = client.get('/api/crm/leads?status=DEMO')
        assert [l['company'] for l in resp.json['leads']] == ['A']

    def test_pipeline(self, client, make_lead):
        make_lead(status='DEMO')
        resp = client.get('/api/crm/pipeline')
        columns = {c['status']: len(c['leads']) for c in resp.json['columns']}
        assert columns['DEMO'] == 1
        assert columns['LEAD'] == 0

    def test_duplicate_check(self, client, make_lead):
        lead = make_lead(company='Acme')
        resp = client.post('/api/crm/leads/duplicates', json={'company': 'acme'})
        assert [d['id'] for d in resp.json['duplicates']] == [lead.id]
        resp = client.post('/api/crm/leads/duplicates', json={'company': 'acme', 'exclude_id': lead.id})
        assert resp.json['duplicates'] == []

    def test_duplicate_check_string_exclude_id(self, client, make_lead):
        lead = make_lead(company='Acme')
        resp = client.post('/api/crm/leads/duplicates', json={'company': 'acme', 'exclude_id': str(lead.id)})
        assert resp.status_code == 200
        assert resp.json['duplicates'] == []

    def test_duplicate_check_invalid_exclude_id(self, client):
        resp = client.post('/api/crm/leads/duplicates', json={'company': 'acme', 'exclude_id': 'abc'})
        assert resp.status_code == 400
        assert resp.json['error'] == 'exclude_id must be a lead id'

    def test_duplicate_check_rejects_array_body(self, client):
        resp = client.post('/api/crm/leads/duplicates', json=[{'company': 'acme'}])
        assert resp.status_code == 400
        assert resp.json['error'] == 'request body must be a JSON object'

    def test_create_rejects_array_body(self, client):
        resp = client.post('/api/crm/leads', json=['Acme'])
        assert resp.status_code == 400


class TestSettings:

    def test_get_defaults(self, client):
        resp = client.get('/api/crm/settings')
        assert resp.status_code == 200
        assert resp.json['settings']['round_robin_enabled'] is True

    def test_patch(self, client):
        resp = client.patch('/api/crm/settings', json={'scoring_enabled': True, 'demo_follow_up_days': 2})
        assert resp.status_code == 200
        assert resp.json['settings']['scoring_enabled'] is True
        assert resp.json['settings']['demo_follow_up_days'] == 2

    def test_patch_invalid(self, client):
        resp = client.patch('/api/crm/settings', json={'weekly_report_day': 12, 'nope': 1})
        assert resp.status_code == 400
        assert len(resp.json['errors']) == 2

    def test_patch_without_body(self, client):
        resp = client.patch('/api/crm/settings')
        assert resp.status_code == 400
