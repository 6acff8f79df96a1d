"""
Effect requests and the best-effort executor.

Decision code (rules, escalation, jobs) returns effect requests; the executor
performs them after the lead mutation is committed. Each effect runs in
isolation: a failure is rolled back, logged and reported in the result list,
never raised.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from leadflow.models.lead_activity import LeadActivity
from leadflow.models.user import User
from leadflow.services import notifications
from leadflow.services.clients import convert_lead_to_client, create_project_for_lead

logger = logging.getLogger('automation.effects')


@dataclass(frozen=True)
class LogActivity:
    """Append one LeadActivity row."""
    type: str
    label: str
    payload: Dict[str, Any] = field(default_factory=dict)
    actor_id: Optional[int] = None


@dataclass(frozen=True)
class Notify:
    """
    Dispatch one notification.

    Either recipient_id (a User, resolved at execution time) or a literal
    `to` address must be set.
    """
    kind: str
    recipient_id: Optional[int] = None
    to: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConvertToClient:
    """Link a WON lead to a client account, then request its project."""
    actor_id: Optional[int] = None
    log_activity: bool = True


@dataclass(frozen=True)
class CreateProject:
    actor_id: Optional[int] = None


class EffectExecutor:
    """Performs effect requests against the store and the notification transport."""

    def __init__(self, session, dispatch=None):
        self.session = session
        self.dispatch = dispatch or notifications.send

    def run(self, lead, effects: List[Any]) -> List[Dict[str, Any]]:
        return [self.execute(lead, effect) for effect in effects]

    def execute(self, lead, effect) -> Dict[str, Any]:
        handlers = {
            LogActivity: self._log_activity,
            Notify: self._notify,
            ConvertToClient: self._convert,
            CreateProject: self._create_project,
        }
        handler = handlers.get(type(effect))
        if handler is None:
            raise TypeError(f"Unknown effect: {effect!r}")

        try:
            return handler(lead, effect)
        except Exception as e:
            self.session.rollback()
            lead_id = getattr(lead, 'id', None)
            logger.error(
                "Effect %s failed for lead %s", type(effect).__name__, lead_id,
                exc_info=True, extra={'lead_id': lead_id},
            )
            return {'effect': type(effect).__name__, 'ok': False, 'error': str(e)}

    # ── Handlers ─────────────────────────────────────────────────────────

    def _log_activity(self, lead, effect):
        self.session.add(LeadActivity(
            lead_id=lead.id,
            type=effect.type,
            label=effect.label,
            payload=effect.payload,
            actor_id=effect.actor_id,
        ))
        self.session.commit()
        return {'effect': 'LogActivity', 'ok': True, 'type': effect.type}

    def _notify(self, lead, effect):
        to, name = effect.to, effect.payload.get('recipient_name', '')
        if not to and effect.recipient_id is not None:
            user = self.session.get(User, effect.recipient_id)
            if user is not None:
                to, name = user.email, user.name

        if not to:
            logger.info("Notification %s skipped — recipient %s has no email", effect.kind, effect.recipient_id)
            return {'effect': 'Notify', 'ok': True, 'sent': False, 'error': 'No recipient email'}

        result = self.dispatch(effect.kind, {**effect.payload, 'to': to, 'recipient_name': name})
        if not result.get('sent'):
            logger.warning("Notification %s to %s not sent: %s", effect.kind, to, result.get('error'))
        return {'effect': 'Notify', 'ok': True, 'sent': bool(result.get('sent')), 'error': result.get('error')}

    def _convert(self, lead, effect):
        client, linked = convert_lead_to_client(self.session, lead)
        result = {'effect': 'ConvertToClient', 'ok': True, 'client_account_id': client.id, 'linked': linked}
        if not linked:
            return result

        if effect.log_activity:
            self.execute(lead, LogActivity(
                type='CONVERTED',
                label=f'Lead converted to client "{client.name}"',
                payload={'client_account_id': client.id},
                actor_id=effect.actor_id,
            ))
        result['project'] = self.execute(lead, CreateProject(actor_id=effect.actor_id))
        return result

    def _create_project(self, lead, effect):
        project, created = create_project_for_lead(self.session, lead)
        return {'effect': 'CreateProject', 'ok': True, 'project_id': project.id, 'created': created}
