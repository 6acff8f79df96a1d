"""
Notifications — email dispatch (SendGrid) for lead automation events, plus the
Slack webhook mirror of the weekly report.

send() never raises: every failure comes back as {'sent': False, 'error': ...}
and callers only inspect the result for logging.
"""
import html
import logging
import requests
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from leadflow.config import SENDGRID_API_KEY, EMAIL_FROM, APP_NAME, CRM_URL, SLACK_WEBHOOK_URL

logger = logging.getLogger('services.notifications')

NOT_SET = 'Not provided'


def _fmt_budget(budget):
    if budget is None:
        return NOT_SET
    return f"{budget:,.0f} €".replace(',', ' ')


def _fmt_date(value):
    if not value:
        return ''
    if isinstance(value, str):
        return value[:10]
    return value.strftime('%Y-%m-%d')


def _greeting(payload):
    name = payload.get('recipient_name') or ''
    return f"Hello {name}," if name else "Hello,"


def _footer():
    return ['', f"Open the CRM: {CRM_URL}", '', f"— The {APP_NAME} team"]


# ── Renderers: payload → (subject, text) ─────────────────────────────────────

def _render_lead_assigned(payload):
    lead = payload.get('lead', {})
    subject = f"[{APP_NAME}] New lead assigned: {lead.get('company', '')}"
    lines = [
        _greeting(payload),
        '',
        f"A new lead has been assigned to you on {APP_NAME}.",
        '',
        f"  Company  : {lead.get('company', '')}",
        f"  Contact  : {lead.get('contact_name') or NOT_SET}",
        f"  Email    : {lead.get('contact_email') or NOT_SET}",
        f"  Phone    : {lead.get('contact_phone') or NOT_SET}",
        f"  Source   : {lead.get('source') or NOT_SET}",
        f"  Priority : {lead.get('priority') or 'NORMALE'}",
        f"  Budget   : {_fmt_budget(lead.get('budget'))}",
    ]
    return subject, '\n'.join(lines + _footer())


def _render_cold_leads_digest(payload):
    leads = payload.get('leads', [])
    subject = f"[{APP_NAME}] {len(leads)} cold lead(s) need your attention"
    lines = [_greeting(payload), '', "These leads have not been contacted recently:", '']
    for lead in leads:
        lines.append(
            f"  - {lead.get('company', '')} ({lead.get('contact_name') or NOT_SET}): "
            f"{lead.get('days_since_contact')} day(s) without contact"
        )
    return subject, '\n'.join(lines + _footer())


def _render_overdue_actions_digest(payload):
    leads = payload.get('leads', [])
    subject = f"[{APP_NAME}] {len(leads)} overdue action(s) on your leads"
    lines = [_greeting(payload), '', "The next action is overdue on these leads:", '']
    for lead in leads:
        lines.append(
            f"  - {lead.get('company', '')} ({lead.get('contact_name') or NOT_SET}): "
            f"due {_fmt_date(lead.get('next_action_at'))}, {lead.get('days_overdue')} day(s) late"
        )
    return subject, '\n'.join(lines + _footer())


def _render_escalation(payload):
    lead = payload.get('lead', {})
    days = payload.get('days_inactive')
    subject = f"[{APP_NAME}] Escalation: lead inactive for {days} days"
    lines = [
        _greeting(payload),
        '',
        f"The lead below has had no activity for {days} days.",
        '',
        f"  Company  : {lead.get('company', '')}",
        f"  Contact  : {lead.get('contact_name') or NOT_SET}",
        f"  Status   : {lead.get('status', '')}",
        f"  Assignee : {payload.get('assignee_name') or 'Unassigned'}",
    ]
    return subject, '\n'.join(lines + _footer())


def _render_proposal_reminder(payload):
    lead = payload.get('lead', {})
    days = payload.get('days_in_proposal')
    subject = f"[{APP_NAME}] Reminder: proposal pending for {days} days"
    lines = [
        _greeting(payload),
        '',
        f"The proposal sent to {lead.get('company', '')} has been pending for {days} days.",
        f"Contact: {lead.get('contact_name') or NOT_SET} / {lead.get('contact_email') or NOT_SET}",
    ]
    return subject, '\n'.join(lines + _footer())


def _render_weekly_report(payload):
    stats = payload.get('stats', {})
    subject = f"[{APP_NAME}] Weekly CRM report"
    lines = [
        "Hello,",
        '',
        "CRM activity over the last 7 days:",
        '',
        f"  New leads       : {stats.get('new_leads', 0)}",
        f"  Qualified       : {stats.get('qualified', 0)}",
        f"  Won             : {stats.get('won', 0)}",
        f"  Lost            : {stats.get('lost', 0)}",
        f"  Active pipeline : {stats.get('total_active', 0)} lead(s)",
        f"  Pipeline value  : {_fmt_budget(stats.get('pipeline_value', 0))}",
        f"  Conversion rate : {stats.get('conversion_rate', 0)}%",
    ]
    return subject, '\n'.join(lines + _footer())


_RENDERERS = {
    'lead_assigned': _render_lead_assigned,
    'cold_leads_digest': _render_cold_leads_digest,
    'overdue_actions_digest': _render_overdue_actions_digest,
    'escalation': _render_escalation,
    'proposal_reminder': _render_proposal_reminder,
    'weekly_report': _render_weekly_report,
}

NOTIFICATION_KINDS = tuple(_RENDERERS)


# ── Transport ────────────────────────────────────────────────────────────────

def _send_email(to, subject, text):
    if not SENDGRID_API_KEY:
        return {'sent': False, 'error': 'Email transport not configured (SENDGRID_API_KEY)'}

    body_html = '<br>'.join(html.escape(line) for line in text.split('\n'))
    message = Mail(
        from_email=(EMAIL_FROM, APP_NAME),
        to_emails=to,
        subject=subject,
        plain_text_content=text,
        html_content=f'<div style="font-family: sans-serif;">{body_html}</div>',
    )
    try:
        response = SendGridAPIClient(SENDGRID_API_KEY).send(message)
    except Exception as e:
        logger.error("SendGrid send to %s failed", to, exc_info=True)
        return {'sent': False, 'error': str(e)}

    if response.status_code >= 400:
        return {'sent': False, 'error': f'SendGrid returned HTTP {response.status_code}'}
    return {'sent': True}


def send(kind, payload):
    """
    Render and send one notification.

    Args:
        kind:    one of NOTIFICATION_KINDS
        payload: dict with 'to' (email), 'recipient_name' and kind-specific data

    Returns:
        {'sent': True} or {'sent': False, 'error': '...'}
    """
    renderer = _RENDERERS.get(kind)
    if renderer is None:
        return {'sent': False, 'error': f'Unknown notification kind: {kind}'}

    to = (payload or {}).get('to')
    if not to:
        return {'sent': False, 'error': 'No recipient address'}

    try:
        subject, text = renderer(payload)
    except Exception as e:
        logger.error("Failed to render %s notification", kind, exc_info=True)
        return {'sent': False, 'error': str(e)}

    result = _send_email(to, subject, text)
    if result.get('sent'):
        logger.info("Notification %s sent to %s", kind, to)
    return result


def notify_weekly_report_slack(stats):
    """Post the weekly report summary to Slack. Returns True when posted."""
    if not SLACK_WEBHOOK_URL:
        return False

    try:
        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"{APP_NAME} — Weekly CRM Report"},
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*New leads:* {stats.get('new_leads', 0)}"},
                    {"type": "mrkdwn", "text": f"*Qualified:* {stats.get('qualified', 0)}"},
                    {"type": "mrkdwn", "text": f"*Won:* {stats.get('won', 0)}"},
                    {"type": "mrkdwn", "text": f"*Lost:* {stats.get('lost', 0)}"},
                    {"type": "mrkdwn", "text": f"*Active:* {stats.get('total_active', 0)}"},
                    {"type": "mrkdwn", "text": f"*Conversion:* {stats.get('conversion_rate', 0)}%"},
                ],
            },
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Pipeline value: {_fmt_budget(stats.get('pipeline_value', 0))}"}],
            },
        ]
        requests.post(SLACK_WEBHOOK_URL, json={"blocks": blocks}, timeout=10)
        logger.info("Weekly report posted to Slack")
        return True

    except Exception:
        logger.error("Failed to post weekly report to Slack", exc_info=True)
        return False
