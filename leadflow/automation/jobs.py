"""
Periodic CRM jobs run by the scheduler.

Each job reads the toggles from CrmSettings, turns matching leads into Notify
effects (one digest per assignee, or one email per lead) and returns a summary
dict. Exceptions propagate so the scheduler can keep the run marker unset.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import func

from leadflow.config import TERMINAL_STATUSES
from leadflow.models.lead import Lead
from leadflow.services import notifications
from leadflow.automation.effects import EffectExecutor, Notify
from leadflow.automation.escalation import sweep_escalations
from leadflow.automation.round_robin import RoundRobinAllocator
from leadflow.automation.signals import days_since_contact, days_overdue, days_since_status_change

logger = logging.getLogger('automation.jobs')


@dataclass
class JobContext:
    """Everything a job needs for one run."""
    session: Any
    settings: Any
    now: datetime
    allocator: RoundRobinAllocator
    dispatch: Optional[Callable] = None
    slack: Optional[Callable] = None


def _active_assigned(query):
    return query.filter(Lead.status.notin_(TERMINAL_STATUSES), Lead.assigned_to.isnot(None))


def _group_by_assignee(leads, row):
    groups = OrderedDict()
    for lead in leads:
        groups.setdefault(lead.assigned_to, []).append(row(lead))
    return groups


def _send_digests(ctx, kind, groups):
    executor = EffectExecutor(ctx.session, dispatch=ctx.dispatch)
    sent = 0
    for assignee_id, rows in groups.items():
        result = executor.execute(None, Notify(kind=kind, recipient_id=assignee_id, payload={'leads': rows}))
        if result.get('sent'):
            sent += 1
    return sent


def process_cold_leads(ctx: JobContext):
    """One cold_leads_digest per assignee."""
    if not ctx.settings.cold_lead_email_enabled:
        return {'processed': 0, 'sent': 0}

    threshold = ctx.now - timedelta(days=ctx.settings.cold_lead_threshold_days)
    leads = (
        _active_assigned(ctx.session.query(Lead))
        .filter(Lead.last_contact_at < threshold)
        .order_by(Lead.last_contact_at)
        .all()
    )
    groups = _group_by_assignee(leads, lambda lead: {
        'company': lead.company,
        'contact_name': lead.contact_name,
        'days_since_contact': days_since_contact(lead, ctx.now),
    })
    sent = _send_digests(ctx, 'cold_leads_digest', groups)
    logger.info("Cold leads: %d lead(s), %d digest(s) sent", len(leads), sent)
    return {'processed': len(leads), 'sent': sent}


def process_overdue_actions(ctx: JobContext):
    """One overdue_actions_digest per assignee."""
    if not ctx.settings.daily_overdue_email_enabled:
        return {'processed': 0, 'sent': 0}

    leads = (
        _active_assigned(ctx.session.query(Lead))
        .filter(Lead.next_action_at < ctx.now)
        .order_by(Lead.next_action_at)
        .all()
    )
    groups = _group_by_assignee(leads, lambda lead: {
        'company': lead.company,
        'contact_name': lead.contact_name,
        'next_action_at': lead.next_action_at.isoformat(),
        'days_overdue': days_overdue(lead, ctx.now),
    })
    sent = _send_digests(ctx, 'overdue_actions_digest', groups)
    logger.info("Overdue actions: %d lead(s), %d digest(s) sent", len(leads), sent)
    return {'processed': len(leads), 'sent': sent}


def process_escalations(ctx: JobContext):
    if not ctx.settings.escalation_enabled:
        return {'scanned': 0, 'escalated': 0}

    result = sweep_escalations(ctx.session, ctx.settings, ctx.now, ctx.allocator, dispatch=ctx.dispatch)
    logger.info("Escalations: %d scanned, %d escalated", result['scanned'], result['escalated'])
    return result


def process_proposal_reminders(ctx: JobContext):
    """One proposal_reminder per lead sitting in PROPOSAL too long."""
    if not ctx.settings.proposal_reminder_enabled:
        return {'processed': 0, 'sent': 0}

    threshold = ctx.now - timedelta(days=ctx.settings.proposal_reminder_days)
    leads = (
        ctx.session.query(Lead)
        .filter(
            Lead.status == 'PROPOSAL',
            Lead.status_changed_at < threshold,
            Lead.assigned_to.isnot(None),
        )
        .order_by(Lead.status_changed_at)
        .all()
    )

    executor = EffectExecutor(ctx.session, dispatch=ctx.dispatch)
    sent = 0
    for lead in leads:
        result = executor.execute(lead, Notify(
            kind='proposal_reminder',
            recipient_id=lead.assigned_to,
            payload={
                'lead': {
                    'company': lead.company,
                    'contact_name': lead.contact_name,
                    'contact_email': lead.contact_email,
                },
                'days_in_proposal': days_since_status_change(lead, ctx.now),
            },
        ))
        if result.get('sent'):
            sent += 1

    logger.info("Proposal reminders: %d lead(s), %d sent", len(leads), sent)
    return {'processed': len(leads), 'sent': sent}


def weekly_stats(session, now):
    """Funnel counters over the 7 days before `now`."""
    week_ago = now - timedelta(days=7)

    def count(*criteria):
        return session.query(func.count(Lead.id)).filter(*criteria).scalar() or 0

    new_leads = count(Lead.created_at >= week_ago)
    qualified = count(Lead.status == 'QUALIFIED', Lead.status_changed_at >= week_ago)
    won = count(Lead.status == 'WON', Lead.status_changed_at >= week_ago)
    lost = count(Lead.status == 'LOST', Lead.status_changed_at >= week_ago)

    total_active, pipeline_value = (
        session.query(func.count(Lead.id), func.coalesce(func.sum(Lead.budget), 0))
        .filter(Lead.status.notin_(TERMINAL_STATUSES))
        .one()
    )

    return {
        'new_leads': new_leads,
        'qualified': qualified,
        'won': won,
        'lost': lost,
        'total_active': total_active,
        'pipeline_value': float(pipeline_value or 0),
        'conversion_rate': round(won / new_leads * 100) if new_leads else 0,
    }


def process_weekly_report(ctx: JobContext):
    """Email the weekly stats to every configured recipient and mirror them to Slack."""
    if not ctx.settings.weekly_report_enabled:
        return {'sent': False}

    recipients = ctx.settings.weekly_report_recipients or []
    if not recipients:
        return {'sent': False, 'error': 'No recipients configured'}

    stats = weekly_stats(ctx.session, ctx.now)
    executor = EffectExecutor(ctx.session, dispatch=ctx.dispatch)
    sent = 0
    for email in recipients:
        result = executor.execute(None, Notify(kind='weekly_report', to=email, payload={'stats': stats}))
        if result.get('sent'):
            sent += 1

    slack = ctx.slack or notifications.notify_weekly_report_slack
    slack(stats)

    logger.info("Weekly report sent to %d/%d recipient(s)", sent, len(recipients))
    return {'sent': sent > 0, 'recipients': sent, 'stats': stats}
