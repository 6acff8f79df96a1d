"""
Escalation sweep — act on assigned leads left untouched for too long.

Depending on escalation_action, the configured manager is emailed, the lead
is handed to the next round-robin assignee, or both.
"""
import logging
from datetime import timedelta

from leadflow.config import TERMINAL_STATUSES
from leadflow.models.lead import Lead
from leadflow.models.user import User
from leadflow.automation.effects import EffectExecutor, LogActivity, Notify
from leadflow.automation.round_robin import eligible_assignee_ids
from leadflow.automation.signals import days_since_update

logger = logging.getLogger('automation.escalation')


def find_inactive_leads(session, threshold):
    return (
        session.query(Lead)
        .filter(
            Lead.updated_at < threshold,
            Lead.status.notin_(TERMINAL_STATUSES),
            Lead.assigned_to.isnot(None),
        )
        .order_by(Lead.id)
        .all()
    )


def sweep_escalations(session, settings, now, allocator, dispatch=None):
    """
    Escalate every inactive lead once.

    Returns:
        {'scanned': int, 'escalated': int}
    """
    threshold = now - timedelta(days=settings.escalation_threshold_days)
    leads = find_inactive_leads(session, threshold)
    if not leads:
        return {'scanned': 0, 'escalated': 0}

    action = settings.escalation_action
    notify = action in ('NOTIFY_MANAGER', 'BOTH')
    reassign = action in ('REASSIGN', 'BOTH')

    manager = None
    if notify:
        if settings.escalation_manager_id is not None:
            manager = session.get(User, settings.escalation_manager_id)
        if manager is None or not manager.email:
            logger.info("Escalation manager not configured — manager notifications skipped")

    pool = eligible_assignee_ids(session) if reassign else []
    executor = EffectExecutor(session, dispatch=dispatch)
    escalated = 0

    for lead in leads:
        days = days_since_update(lead, now)
        current = session.get(User, lead.assigned_to)

        if notify and manager is not None and manager.email:
            executor.execute(lead, Notify(
                kind='escalation',
                to=manager.email,
                payload={
                    'recipient_name': manager.name,
                    'lead': {'company': lead.company, 'contact_name': lead.contact_name, 'status': lead.status},
                    'assignee_name': current.name if current else '',
                    'days_inactive': days,
                },
            ))

        if reassign:
            new_assignee = allocator.next_assignee(pool)
            if new_assignee is not None and new_assignee != lead.assigned_to:
                old_assignee = lead.assigned_to
                lead.assigned_to = new_assignee
                session.commit()
                logger.info("Lead %s reassigned %s -> %s after %d days inactive",
                            lead.id, old_assignee, new_assignee, days)
                if settings.activity_logging:
                    executor.execute(lead, LogActivity(
                        type='ESCALATION_REASSIGN',
                        label=f'Lead reassigned automatically after {days} days of inactivity',
                        payload={'from': old_assignee, 'to': new_assignee, 'days': days},
                    ))

        escalated += 1

    return {'scanned': len(leads), 'escalated': escalated}
