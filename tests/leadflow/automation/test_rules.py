"""Tests for leadflow.automation.rules — the create/update transition function."""
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from leadflow.errors import ScoringConfigError
from leadflow.models.lead import LEAD_DEFAULTS
from leadflow.automation.effects import LogActivity, Notify, ConvertToClient
from leadflow.automation.round_robin import RoundRobinAllocator
from leadflow.automation.rules import RuleEngine, should_auto_qualify

NOW = datetime(2026, 3, 10, 14, 30)


@pytest.fixture
def engine():
    return RuleEngine(allocator=RoundRobinAllocator(), clock=lambda: NOW)


@pytest.fixture
def settings(crm_settings):
    return crm_settings()


def existing(**fields):
    state = dict(LEAD_DEFAULTS, company='Acme Corp', status_changed_at=NOW - timedelta(days=5))
    state.update(fields)
    return state


def activity_types(outcome):
    return [e.type for e in outcome.effects if isinstance(e, LogActivity)]


# ── Auto-qualification ───────────────────────────────────────────────────────

class TestAutoQualify:

    def test_qualifies_on_create(self, engine, settings):
        outcome = engine.apply_on_create(
            {'company': 'Acme', 'budget': 15000, 'source': 'Referral', 'status': 'LEAD'}, settings)
        assert outcome.state['status'] == 'QUALIFIED'
        assert outcome.state['status_changed_at'] == NOW
        assert activity_types(outcome) == ['CREATED', 'AUTO_QUALIFIED']

    def test_requires_budget_and_source(self, engine, settings):
        assert engine.apply_on_create({'company': 'A', 'budget': 15000}, settings).state['status'] == 'LEAD'
        assert engine.apply_on_create({'company': 'A', 'source': 'Ads'}, settings).state['status'] == 'LEAD'
        assert engine.apply_on_create(
            {'company': 'A', 'budget': 0, 'source': 'Ads'}, settings).state['status'] == 'LEAD'

    def test_only_from_lead_status(self, engine, settings):
        outcome = engine.apply_on_create(
            {'company': 'A', 'budget': 500, 'source': 'Ads', 'status': 'DEMO'}, settings)
        assert outcome.state['status'] == 'DEMO'

    def test_disabled(self, engine, crm_settings):
        settings = crm_settings(auto_qualify_enabled=False)
        outcome = engine.apply_on_create({'company': 'A', 'budget': 500, 'source': 'Ads'}, settings)
        assert outcome.state['status'] == 'LEAD'

    def test_qualifies_on_update_when_budget_arrives(self, engine, settings):
        outcome = engine.apply_on_transition(existing(source='Ads'), {'budget': 2000}, settings)
        assert outcome.state['status'] == 'QUALIFIED'
        assert outcome.status_changed
        assert activity_types(outcome) == ['AUTO_QUALIFIED']

    def test_explicit_demotion_to_lead_is_respected(self, engine, settings):
        previous = existing(status='QUALIFIED', budget=2000, source='Ads')
        outcome = engine.apply_on_transition(previous, {'status': 'LEAD'}, settings)
        assert outcome.state['status'] == 'LEAD'
        assert outcome.state['status_changed_at'] == NOW

    def test_should_auto_qualify_blank_source(self):
        assert not should_auto_qualify({'budget': 100, 'source': '   '})


# ── Status entry rules ───────────────────────────────────────────────────────

class TestStatusEntryRules:

    def test_status_changed_at_untouched_without_status_change(self, engine, settings):
        previous = existing(status='CONTACTED')
        outcome = engine.apply_on_transition(previous, {'notes': 'Called back'}, settings)
        assert outcome.state['status_changed_at'] == previous['status_changed_at']
        assert 'status_changed_at' not in outcome.changes
        assert not outcome.status_changed

    def test_same_status_in_patch_is_not_a_change(self, engine, settings):
        previous = existing(status='DEMO')
        outcome = engine.apply_on_transition(previous, {'status': 'DEMO'}, settings)
        assert not outcome.status_changed
        assert activity_types(outcome) == []

    def test_contacted_stamps_last_contact(self, engine, settings):
        outcome = engine.apply_on_transition(existing(status='QUALIFIED'), {'status': 'CONTACTED'}, settings)
        assert outcome.state['last_contact_at'] == NOW

    def test_contacted_keeps_existing_last_contact(self, engine, settings):
        earlier = NOW - timedelta(days=2)
        outcome = engine.apply_on_transition(
            existing(status='QUALIFIED', last_contact_at=earlier), {'status': 'CONTACTED'}, settings)
        assert outcome.state['last_contact_at'] == earlier

    def test_demo_sets_follow_up(self, engine, settings):
        outcome = engine.apply_on_transition(existing(status='CONTACTED'), {'status': 'DEMO'}, settings)
        assert outcome.state['next_action_at'] == NOW + timedelta(days=1)

    def test_proposal_sets_follow_up_once(self, engine, settings):
        first = engine.apply_on_transition(existing(status='DEMO'), {'status': 'PROPOSAL'}, settings)
        assert first.state['next_action_at'] == NOW + timedelta(days=3)

        later = RuleEngine(clock=lambda: NOW + timedelta(days=1))
        second = later.apply_on_transition(first.state, {'notes': 'Sent deck'}, settings)
        assert second.state['next_action_at'] == NOW + timedelta(days=3)
        assert 'next_action_at' not in second.changes

    def test_proposal_keeps_planned_action(self, engine, settings):
        planned = NOW + timedelta(days=10)
        outcome = engine.apply_on_transition(
            existing(status='DEMO'), {'status': 'PROPOSAL', 'next_action_at': planned}, settings)
        assert outcome.state['next_action_at'] == planned

    def test_follow_up_days_from_settings(self, engine, crm_settings):
        settings = crm_settings(proposal_follow_up_days=5)
        outcome = engine.apply_on_transition(existing(status='DEMO'), {'status': 'PROPOSAL'}, settings)
        assert outcome.state['next_action_at'] == NOW + timedelta(days=5)

    @pytest.mark.parametrize('status', ['WON', 'LOST'])
    def test_close_clears_next_action(self, engine, settings, status):
        previous = existing(status='PROPOSAL', next_action_at=NOW + timedelta(days=1))
        outcome = engine.apply_on_transition(previous, {'status': status}, settings)
        assert outcome.state['next_action_at'] is None

    def test_close_keeps_next_action_when_disabled(self, engine, crm_settings):
        settings = crm_settings(clear_next_action_on_close=False)
        planned = NOW + timedelta(days=1)
        outcome = engine.apply_on_transition(
            existing(status='PROPOSAL', next_action_at=planned), {'status': 'LOST'}, settings)
        assert outcome.state['next_action_at'] == planned

    def test_status_change_activity_payload(self, engine, settings):
        outcome = engine.apply_on_transition(existing(status='DEMO'), {'status': 'LOST'}, settings, actor_id=4)
        change = next(e for e in outcome.effects if isinstance(e, LogActivity))
        assert change.type == 'STATUS_CHANGE'
        assert change.payload == {'from': 'DEMO', 'to': 'LOST'}
        assert change.actor_id == 4


# ── WON conversion ───────────────────────────────────────────────────────────

class TestWonConversion:

    def test_won_requests_conversion(self, engine, settings):
        outcome = engine.apply_on_transition(existing(status='PROPOSAL'), {'status': 'WON'}, settings, actor_id=3)
        conversions = [e for e in outcome.effects if isinstance(e, ConvertToClient)]
        assert conversions == [ConvertToClient(actor_id=3, log_activity=True)]

    def test_already_linked_lead_is_not_converted_again(self, engine, settings):
        previous = existing(status='PROPOSAL', client_account_id=9)
        outcome = engine.apply_on_transition(previous, {'status': 'WON'}, settings)
        assert not any(isinstance(e, ConvertToClient) for e in outcome.effects)

    def test_won_to_won_is_not_a_transition(self, engine, settings):
        outcome = engine.apply_on_transition(existing(status='WON'), {'status': 'WON', 'notes': 'x'}, settings)
        assert outcome.effects == []

    def test_client_link_cannot_be_overwritten(self, engine, settings):
        previous = existing(status='WON', client_account_id=9)
        outcome = engine.apply_on_transition(previous, {'client_account_id': 12}, settings)
        assert outcome.state['client_account_id'] == 9

    def test_client_link_cannot_be_cleared(self, engine, settings):
        previous = existing(status='WON', client_account_id=9)
        outcome = engine.apply_on_transition(previous, {'client_account_id': None}, settings)
        assert outcome.state['client_account_id'] == 9

    def test_engine_owned_fields_ignored_in_patch(self, engine, settings):
        previous = existing(status='DEMO', score=40)
        forged = NOW - timedelta(days=100)
        outcome = engine.apply_on_transition(previous, {'status_changed_at': forged, 'score': 99}, settings)
        assert outcome.state['status_changed_at'] == previous['status_changed_at']
        assert outcome.state['score'] == 40


# ── Round-robin + assignment ─────────────────────────────────────────────────

class TestAssignment:

    def test_create_assigns_round_robin(self, engine, settings):
        pool = MagicMock(return_value=[5, 6])
        first = engine.apply_on_create({'company': 'A'}, settings, assignee_pool=pool)
        second = engine.apply_on_create({'company': 'B'}, settings, assignee_pool=pool)
        assert (first.state['assigned_to'], second.state['assigned_to']) == (5, 6)

    def test_explicit_assignee_skips_pool(self, engine, settings):
        pool = MagicMock(return_value=[5, 6])
        outcome = engine.apply_on_create({'company': 'A', 'assigned_to': 8}, settings, assignee_pool=pool)
        assert outcome.state['assigned_to'] == 8
        pool.assert_not_called()

    def test_round_robin_disabled(self, engine, crm_settings):
        settings = crm_settings(round_robin_enabled=False)
        outcome = engine.apply_on_create({'company': 'A'}, settings, assignee_pool=lambda: [5])
        assert outcome.state['assigned_to'] is None

    def test_empty_pool_leaves_unassigned(self, engine, settings):
        outcome = engine.apply_on_create({'company': 'A'}, settings, assignee_pool=lambda: [])
        assert outcome.state['assigned_to'] is None
        assert not any(isinstance(e, Notify) for e in outcome.effects)

    def test_explicit_unassign_on_update_is_respected(self, engine, settings):
        outcome = engine.apply_on_transition(
            existing(assigned_to=5), {'assigned_to': None}, settings, assignee_pool=lambda: [6])
        assert outcome.state['assigned_to'] is None

    def test_unassigned_lead_gets_assignee_on_update(self, engine, settings):
        outcome = engine.apply_on_transition(
            existing(status='CONTACTED'), {'notes': 'x'}, settings, assignee_pool=lambda: [6])
        assert outcome.state['assigned_to'] == 6

    def test_closed_lead_not_auto_assigned(self, engine, settings):
        outcome = engine.apply_on_transition(
            existing(status='LOST'), {'notes': 'x'}, settings, assignee_pool=lambda: [6])
        assert outcome.state['assigned_to'] is None

    def test_assignment_emits_activity_and_email(self, engine, settings):
        outcome = engine.apply_on_create(
            {'company': 'Acme', 'contact_email': 'c@acme.fr'}, settings, assignee_pool=lambda: [5])
        assigned = [e for e in outcome.effects if isinstance(e, LogActivity) and e.type == 'ASSIGNED']
        assert assigned[0].payload == {'from': None, 'to': 5, 'round_robin': True}
        notify = [e for e in outcome.effects if isinstance(e, Notify)]
        assert len(notify) == 1
        assert notify[0].kind == 'lead_assigned'
        assert notify[0].recipient_id == 5
        assert notify[0].payload['lead']['company'] == 'Acme'

    def test_reassignment_on_update_notifies_new_owner(self, engine, settings):
        outcome = engine.apply_on_transition(existing(assigned_to=5), {'assigned_to': 7}, settings, actor_id=1)
        notify = [e for e in outcome.effects if isinstance(e, Notify)]
        assert [n.recipient_id for n in notify] == [7]

    def test_no_email_when_disabled(self, engine, crm_settings):
        settings = crm_settings(email_on_assignment=False)
        outcome = engine.apply_on_create({'company': 'A'}, settings, assignee_pool=lambda: [5])
        assert not any(isinstance(e, Notify) for e in outcome.effects)
        assert 'ASSIGNED' in activity_types(outcome)

    def test_activity_logging_off_keeps_other_effects(self, engine, crm_settings):
        settings = crm_settings(activity_logging=False)
        outcome = engine.apply_on_create({'company': 'A'}, settings, assignee_pool=lambda: [5])
        assert activity_types(outcome) == []
        assert [type(e) for e in outcome.effects] == [Notify]


# ── Scoring ──────────────────────────────────────────────────────────────────

class TestScoringRule:

    def test_scoring_disabled_by_default(self, engine, settings):
        outcome = engine.apply_on_create({'company': 'A', 'budget': 50000}, settings)
        assert outcome.state['score'] is None

    def test_score_computed_on_create(self, engine, crm_settings):
        settings = crm_settings(scoring_enabled=True)
        outcome = engine.apply_on_create(
            {'company': 'A', 'budget': 15000, 'source': 'Referral', 'contact_email': 'a@b.fr'}, settings)
        # 30 + 25 + 5 (NORMALE) + 10
        assert outcome.state['score'] == 70

    def test_rescored_when_scoring_field_changes(self, engine, crm_settings):
        settings = crm_settings(scoring_enabled=True)
        outcome = engine.apply_on_transition(existing(score=5), {'priority': 'URGENTE'}, settings)
        assert outcome.state['score'] == 20

    def test_not_rescored_on_unrelated_change(self, engine, crm_settings):
        settings = crm_settings(scoring_enabled=True)
        outcome = engine.apply_on_transition(existing(score=42), {'notes': 'x'}, settings)
        assert outcome.state['score'] == 42

    def test_malformed_weights_fail_before_assignment(self, crm_settings):
        settings = crm_settings(scoring_enabled=True, scoring_weights={'hasEmail': -3})
        allocator = RoundRobinAllocator()
        engine = RuleEngine(allocator=allocator, clock=lambda: NOW)
        with pytest.raises(ScoringConfigError):
            engine.apply_on_create({'company': 'A'}, settings, assignee_pool=lambda: [1, 2])
        assert allocator.cursor == -1


class TestCreateOutcome:

    def test_created_activity_first(self, engine, settings):
        outcome = engine.apply_on_create({'company': 'Acme'}, settings, actor_id=2)
        first = outcome.effects[0]
        assert first.type == 'CREATED'
        assert first.actor_id == 2

    def test_changes_contain_full_state_on_create(self, engine, settings):
        outcome = engine.apply_on_create({'company': 'Acme'}, settings)
        assert outcome.changes == outcome.state
        assert outcome.previous_status is None
        assert outcome.status_changed
