"""
Lead signals — cold / stale / overdue predicates and day counters.

Used by the digest jobs and by the API to badge leads. Terminal leads
(WON / LOST) never raise a signal.
"""
from datetime import timedelta

from leadflow.config import TERMINAL_STATUSES

_DAY = 86400


def _days_between(earlier, later):
    return int((later - earlier).total_seconds() // _DAY)


def is_terminal(lead):
    return lead.status in TERMINAL_STATUSES


def is_lead_cold(lead, days, now):
    """No contact for more than `days` days."""
    if not lead.last_contact_at or is_terminal(lead):
        return False
    return lead.last_contact_at < now - timedelta(days=days)


def is_lead_stale(lead, days, now):
    """Stuck in the same status for more than `days` days."""
    if not lead.status_changed_at or is_terminal(lead):
        return False
    return lead.status_changed_at < now - timedelta(days=days)


def is_next_action_overdue(lead, now):
    if not lead.next_action_at or is_terminal(lead):
        return False
    return lead.next_action_at < now


def days_since_contact(lead, now):
    if not lead.last_contact_at:
        return None
    return _days_between(lead.last_contact_at, now)


def days_since_status_change(lead, now):
    if not lead.status_changed_at:
        return None
    return _days_between(lead.status_changed_at, now)


def days_since_update(lead, now):
    if not lead.updated_at:
        return 0
    return _days_between(lead.updated_at, now)


def days_overdue(lead, now):
    if not lead.next_action_at or lead.next_action_at >= now:
        return 0
    return _days_between(lead.next_action_at, now)


def lead_alerts(lead, settings, now):
    """Alert badges for one lead, honoring the per-alert toggles."""
    return {
        'cold': bool(settings.cold_lead_alert_enabled)
                and is_lead_cold(lead, settings.cold_lead_threshold_days, now),
        'stale': bool(settings.stale_lead_alert_enabled)
                 and is_lead_stale(lead, settings.stale_lead_threshold_days, now),
        'overdue': bool(settings.overdue_alert_enabled)
                   and is_next_action_overdue(lead, now),
    }
