"""
CRM blueprint — lead CRUD, pipeline view, duplicate check and automation settings.

All endpoints are JSON under /api/crm. Authentication happens upstream; the
acting user id is read from the X-Actor-Id header.
"""
import logging
from datetime import datetime
from flask import Blueprint, request, jsonify

from leadflow.database import get_session
from leadflow.errors import ConfigurationError, LeadValidationError, SettingsValidationError
from leadflow.models.crm_settings import CrmSettings
from leadflow.models.lead import Lead
from leadflow.services import leads as lead_service

logger = logging.getLogger('routes.crm')

bp = Blueprint('crm', __name__, url_prefix='/api/crm')


def _actor_id():
    value = request.headers.get('X-Actor-Id')
    try:
        return int(value) if value else None
    except ValueError:
        return None


def _json_object():
    """Request body as a dict; a missing body is empty, any other JSON type is rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise LeadValidationError('request body must be a JSON object')
    return data


# ── Error mapping ────────────────────────────────────────────────────────────

@bp.errorhandler(LeadValidationError)
def _lead_invalid(e):
    return jsonify({'error': str(e)}), 400


@bp.errorhandler(SettingsValidationError)
def _settings_invalid(e):
    return jsonify({'error': 'Invalid settings', 'errors': e.errors}), 400


@bp.errorhandler(ConfigurationError)
def _config_invalid(e):
    logger.error("Automation configuration error: %s", e)
    return jsonify({'error': f'Automation configuration error: {e}'}), 400


# ── Leads ────────────────────────────────────────────────────────────────────

@bp.route('/leads')
def list_leads():
    assigned_to = request.args.get('assigned_to', type=int)
    session = get_session()
    try:
        settings = CrmSettings.get_settings(session)
        now = datetime.now()
        leads = lead_service.list_leads(
            session,
            status=request.args.get('status'),
            assigned_to=assigned_to,
            search=request.args.get('search'),
        )
        return jsonify({'leads': [lead_service.serialize_lead(lead, settings, now) for lead in leads]})
    finally:
        session.close()


@bp.route('/leads', methods=['POST'])
def create_lead():
    data = _json_object()
    session = get_session()
    try:
        lead, duplicates, effects = lead_service.create_lead(session, data, actor_id=_actor_id())
        settings = CrmSettings.get_settings(session)
        return jsonify({
            'lead': lead_service.serialize_lead(lead, settings),
            'duplicates': [dup.to_dict() for dup in duplicates],
            'effects': effects,
        }), 201
    finally:
        session.close()


@bp.route('/leads/<int:lead_id>')
def get_lead(lead_id):
    session = get_session()
    try:
        lead = session.get(Lead, lead_id)
        if lead is None:
            return jsonify({'error': 'Lead not found'}), 404
        settings = CrmSettings.get_settings(session)
        return jsonify({'lead': lead_service.serialize_lead(lead, settings)})
    finally:
        session.close()


@bp.route('/leads/<int:lead_id>', methods=['PATCH'])
def update_lead(lead_id):
    data = _json_object()
    session = get_session()
    try:
        lead, effects = lead_service.update_lead(session, lead_id, data, actor_id=_actor_id())
        if lead is None:
            return jsonify({'error': 'Lead not found'}), 404
        settings = CrmSettings.get_settings(session)
        return jsonify({'lead': lead_service.serialize_lead(lead, settings), 'effects': effects})
    finally:
        session.close()


@bp.route('/leads/<int:lead_id>/activities')
def lead_activities(lead_id):
    session = get_session()
    try:
        if session.get(Lead, lead_id) is None:
            return jsonify({'error': 'Lead not found'}), 404
        activities = lead_service.lead_activities(session, lead_id)
        return jsonify({'activities': [a.to_dict() for a in activities]})
    finally:
        session.close()


@bp.route('/leads/duplicates', methods=['POST'])
def check_duplicates():
    """Duplicate candidates for a lead form, before it is saved."""
    data = _json_object()
    exclude_id = data.pop('exclude_id', None)
    if exclude_id not in (None, ''):
        try:
            exclude_id = int(exclude_id)
        except (TypeError, ValueError):
            raise LeadValidationError('exclude_id must be a lead id')
    else:
        exclude_id = None
    session = get_session()
    try:
        duplicates = lead_service.check_duplicates(session, data, exclude_id=exclude_id)
        return jsonify({'duplicates': [dup.to_dict() for dup in duplicates]})
    finally:
        session.close()


@bp.route('/pipeline')
def pipeline():
    session = get_session()
    try:
        settings = CrmSettings.get_settings(session)
        now = datetime.now()
        columns = [
            {
                'status': column['status'],
                'leads': [lead_service.serialize_lead(lead, settings, now) for lead in column['leads']],
            }
            for column in lead_service.pipeline(session)
        ]
        return jsonify({'columns': columns})
    finally:
        session.close()


# ── Settings ─────────────────────────────────────────────────────────────────

@bp.route('/settings')
def get_settings():
    session = get_session()
    try:
        return jsonify({'settings': CrmSettings.get_settings(session).to_dict()})
    finally:
        session.close()


@bp.route('/settings', methods=['PATCH'])
def update_settings():
    data = request.get_json(silent=True)
    session = get_session()
    try:
        settings = CrmSettings.update_settings(session, data)
        logger.info("CRM settings updated by %s: %s", _actor_id(), ', '.join(sorted(data)))
        return jsonify({'settings': settings.to_dict()})
    finally:
        session.close()
