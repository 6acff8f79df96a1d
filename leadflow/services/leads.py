"""
Lead service — create / update / list leads with the automation rules applied.

The flow for every mutation:
  1. normalize the request body
  2. RuleEngine computes the final state and the effect requests
  3. the lead row is committed
  4. EffectExecutor performs the effects (activities, emails, conversion)

A failing effect never undoes step 3.
"""
import logging
from datetime import datetime

from sqlalchemy import or_

from leadflow.config import LEAD_STATUSES, LEAD_PRIORITIES, LEAD_TEMPERATURES
from leadflow.errors import LeadValidationError
from leadflow.models.crm_settings import CrmSettings
from leadflow.models.lead import Lead
from leadflow.models.lead_activity import LeadActivity
from leadflow.models.user import User
from leadflow.automation.duplicates import find_duplicates
from leadflow.automation.effects import EffectExecutor
from leadflow.automation.round_robin import eligible_assignee_ids
from leadflow.automation.rules import RuleEngine
from leadflow.automation.signals import lead_alerts, days_since_contact, days_overdue

logger = logging.getLogger('services.leads')

_TEXT_FIELDS = ('contact_name', 'contact_email', 'contact_phone', 'source', 'notes')
_DATE_FIELDS = ('next_action_at', 'last_contact_at')


def _parse_datetime(name, value):
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise LeadValidationError(f'{name} must be an ISO 8601 date')
    # Stored as naive local time
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def normalize_lead_payload(body):
    """
    Keep the writable lead fields from a request body, coerced to their types.

    Raises LeadValidationError on an unknown status / priority / temperature,
    an unparseable date or a non-integer assignee.
    """
    body = body or {}
    payload = {}

    if 'company' in body:
        payload['company'] = str(body['company'] or '').strip()
    for name in _TEXT_FIELDS:
        if name in body:
            payload[name] = str(body[name] or '').strip() if name == 'contact_email' else str(body[name] or '')

    if 'status' in body:
        if body['status'] not in LEAD_STATUSES:
            raise LeadValidationError(f'status must be one of {", ".join(LEAD_STATUSES)}')
        payload['status'] = body['status']
    if 'priority' in body:
        if body['priority'] not in LEAD_PRIORITIES:
            raise LeadValidationError(f'priority must be one of {", ".join(LEAD_PRIORITIES)}')
        payload['priority'] = body['priority']
    if 'temperature' in body:
        if body['temperature'] is not None and body['temperature'] not in LEAD_TEMPERATURES:
            raise LeadValidationError(f'temperature must be one of {", ".join(LEAD_TEMPERATURES)}')
        payload['temperature'] = body['temperature']

    if 'budget' in body:
        try:
            payload['budget'] = float(body['budget']) if body['budget'] not in (None, '') else None
        except (TypeError, ValueError):
            payload['budget'] = None

    for name in _DATE_FIELDS:
        if name in body:
            payload[name] = _parse_datetime(name, body[name])

    if 'assigned_to' in body:
        value = body['assigned_to']
        if value in (None, ''):
            payload['assigned_to'] = None
        else:
            try:
                payload['assigned_to'] = int(value)
            except (TypeError, ValueError):
                raise LeadValidationError('assigned_to must be a user id')

    return payload


def _check_assignee(session, payload):
    assignee = payload.get('assigned_to')
    if assignee is not None and session.get(User, assignee) is None:
        raise LeadValidationError(f'assigned_to: user {assignee} does not exist')


def _engine(allocator=None, clock=None):
    if allocator is None:
        from leadflow.extensions import allocator
    return RuleEngine(allocator=allocator, clock=clock)


def create_lead(session, data, actor_id=None, allocator=None, dispatch=None, clock=None):
    """
    Create a lead.

    Returns:
        (lead, duplicates, effect_results) — duplicates are the existing leads
        matching the new one, found before it was inserted.
    """
    payload = normalize_lead_payload(data)
    if not payload.get('company'):
        raise LeadValidationError('company is required')
    _check_assignee(session, payload)
    payload['created_by'] = actor_id

    settings = CrmSettings.get_settings(session)
    outcome = _engine(allocator, clock).apply_on_create(
        payload, settings,
        assignee_pool=lambda: eligible_assignee_ids(session),
        actor_id=actor_id,
    )

    duplicates = find_duplicates(session, outcome.state, settings)

    lead = Lead(**outcome.state)
    session.add(lead)
    session.commit()
    logger.info("Created lead %s (%s) status=%s assignee=%s",
                lead.id, lead.company, lead.status, lead.assigned_to)

    results = EffectExecutor(session, dispatch=dispatch).run(lead, outcome.effects)
    return lead, duplicates, results


def update_lead(session, lead_id, data, actor_id=None, allocator=None, dispatch=None, clock=None):
    """
    Apply a patch to a lead.

    Returns:
        (lead, effect_results), or (None, []) when the lead does not exist.
    """
    lead = session.get(Lead, lead_id)
    if lead is None:
        return None, []

    payload = normalize_lead_payload(data)
    if 'company' in payload and not payload['company']:
        raise LeadValidationError('company cannot be empty')
    _check_assignee(session, payload)

    settings = CrmSettings.get_settings(session)
    outcome = _engine(allocator, clock).apply_on_transition(
        lead.to_state(), payload, settings,
        assignee_pool=lambda: eligible_assignee_ids(session),
        actor_id=actor_id,
    )

    lead.apply_state(outcome.changes)
    session.commit()
    if outcome.status_changed:
        logger.info("Lead %s: %s -> %s", lead.id, outcome.previous_status, lead.status)

    results = EffectExecutor(session, dispatch=dispatch).run(lead, outcome.effects)
    return lead, results


def check_duplicates(session, data, exclude_id=None):
    """Duplicate candidates for an unsaved lead form."""
    fields = normalize_lead_payload(data)
    settings = CrmSettings.get_settings(session)
    return find_duplicates(session, fields, settings, exclude_id=exclude_id)


def list_leads(session, status=None, assigned_to=None, search=None):
    query = session.query(Lead)
    if status in LEAD_STATUSES:
        query = query.filter(Lead.status == status)
    if assigned_to is not None:
        query = query.filter(Lead.assigned_to == assigned_to)
    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(
            Lead.company.ilike(pattern),
            Lead.contact_name.ilike(pattern),
            Lead.contact_email.ilike(pattern),
        ))
    return query.order_by(Lead.updated_at.desc(), Lead.id.desc()).all()


def pipeline(session):
    """Leads grouped into one column per status, in funnel order."""
    leads = list_leads(session)
    return [
        {'status': status, 'leads': [lead for lead in leads if lead.status == status]}
        for status in LEAD_STATUSES
    ]


def lead_activities(session, lead_id):
    return (
        session.query(LeadActivity)
        .filter_by(lead_id=lead_id)
        .order_by(LeadActivity.created_at.desc(), LeadActivity.id.desc())
        .all()
    )


def serialize_lead(lead, settings, now=None):
    """Lead dict plus its alert badges."""
    now = now or datetime.now()
    d = lead.to_dict()
    d['alerts'] = lead_alerts(lead, settings, now)
    d['days_since_contact'] = days_since_contact(lead, now)
    d['days_overdue'] = days_overdue(lead, now)
    return d
