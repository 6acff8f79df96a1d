"""
CrmSettings model — singleton row holding every automation toggle and parameter.

There is exactly one row. get_settings() materializes it with defaults on
first read; update_settings() validates a patch and applies it atomically.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, Text, Boolean, DateTime, JSON, ForeignKey

from leadflow.config import DEFAULT_SCORING_WEIGHTS, ESCALATION_ACTIONS
from leadflow.database import Base
from leadflow.errors import SettingsValidationError, ConfigurationError
from leadflow.automation.clock import parse_time_of_day
from leadflow.automation.scoring import resolve_weights


BOOL_FIELDS = (
    'round_robin_enabled',
    'auto_qualify_enabled',
    'auto_last_contact_on_contacted',
    'auto_next_action_on_demo',
    'auto_next_action_on_proposal',
    'clear_next_action_on_close',
    'email_on_assignment',
    'activity_logging',
    'cold_lead_alert_enabled',
    'cold_lead_email_enabled',
    'overdue_alert_enabled',
    'daily_overdue_email_enabled',
    'stale_lead_alert_enabled',
    'escalation_enabled',
    'scoring_enabled',
    'duplicate_detection_enabled',
    'duplicate_check_email',
    'duplicate_check_company',
    'duplicate_check_phone',
    'proposal_reminder_enabled',
    'weekly_report_enabled',
)

DAY_COUNT_FIELDS = (
    'demo_follow_up_days',
    'proposal_follow_up_days',
    'cold_lead_threshold_days',
    'stale_lead_threshold_days',
    'escalation_threshold_days',
    'proposal_reminder_days',
)

TIME_FIELDS = ('daily_overdue_email_time', 'weekly_report_time')


class CrmSettings(Base):
    __tablename__ = 'crm_settings'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # ── Assignment ───────────────────────────────────────────────────────
    round_robin_enabled = Column(Boolean, nullable=False, default=True)

    # ── Qualification ────────────────────────────────────────────────────
    auto_qualify_enabled = Column(Boolean, nullable=False, default=True)

    # ── Status change rules ──────────────────────────────────────────────
    auto_last_contact_on_contacted = Column(Boolean, nullable=False, default=True)
    auto_next_action_on_demo = Column(Boolean, nullable=False, default=True)
    demo_follow_up_days = Column(Integer, nullable=False, default=1)
    auto_next_action_on_proposal = Column(Boolean, nullable=False, default=True)
    proposal_follow_up_days = Column(Integer, nullable=False, default=3)
    clear_next_action_on_close = Column(Boolean, nullable=False, default=True)

    # ── Notifications ────────────────────────────────────────────────────
    email_on_assignment = Column(Boolean, nullable=False, default=True)
    activity_logging = Column(Boolean, nullable=False, default=True)

    # ── Cold leads ───────────────────────────────────────────────────────
    cold_lead_alert_enabled = Column(Boolean, nullable=False, default=True)
    cold_lead_threshold_days = Column(Integer, nullable=False, default=7)
    cold_lead_email_enabled = Column(Boolean, nullable=False, default=False)

    # ── Overdue actions ──────────────────────────────────────────────────
    overdue_alert_enabled = Column(Boolean, nullable=False, default=True)
    daily_overdue_email_enabled = Column(Boolean, nullable=False, default=False)
    daily_overdue_email_time = Column(Text, nullable=False, default='08:00')  # HH:mm

    # ── Stale leads ──────────────────────────────────────────────────────
    stale_lead_alert_enabled = Column(Boolean, nullable=False, default=True)
    stale_lead_threshold_days = Column(Integer, nullable=False, default=14)

    # ── Escalation ───────────────────────────────────────────────────────
    escalation_enabled = Column(Boolean, nullable=False, default=False)
    escalation_threshold_days = Column(Integer, nullable=False, default=10)
    escalation_action = Column(Text, nullable=False, default='NOTIFY_MANAGER')
    escalation_manager_id = Column(Integer, ForeignKey('users.id'), nullable=True)

    # ── Scoring ──────────────────────────────────────────────────────────
    scoring_enabled = Column(Boolean, nullable=False, default=False)
    scoring_weights = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_SCORING_WEIGHTS))

    # ── Duplicate detection ──────────────────────────────────────────────
    duplicate_detection_enabled = Column(Boolean, nullable=False, default=True)
    duplicate_check_email = Column(Boolean, nullable=False, default=True)
    duplicate_check_company = Column(Boolean, nullable=False, default=True)
    duplicate_check_phone = Column(Boolean, nullable=False, default=False)

    # ── Proposal reminder ────────────────────────────────────────────────
    proposal_reminder_enabled = Column(Boolean, nullable=False, default=False)
    proposal_reminder_days = Column(Integer, nullable=False, default=7)

    # ── Weekly report ────────────────────────────────────────────────────
    weekly_report_enabled = Column(Boolean, nullable=False, default=False)
    weekly_report_day = Column(Integer, nullable=False, default=1)  # 0=Sunday, 1=Monday, ...
    weekly_report_time = Column(Text, nullable=False, default='09:00')
    weekly_report_recipients = Column(JSON, nullable=False, default=list)

    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @classmethod
    def get_settings(cls, session):
        """Return the singleton row, creating it with defaults if absent."""
        settings = session.query(cls).order_by(cls.id).first()
        if settings is None:
            settings = cls()
            session.add(settings)
            session.commit()
        return settings

    @classmethod
    def update_settings(cls, session, updates):
        """
        Validate and apply a settings patch.

        Raises SettingsValidationError (listing every problem) before anything
        is written. scoring_weights is merged key by key into the current table.
        """
        settings = cls.get_settings(session)
        cleaned = validate_settings_patch(updates, current_weights=settings.scoring_weights)
        for key, value in cleaned.items():
            setattr(settings, key, value)
        session.commit()
        return settings

    def to_dict(self):
        d = {}
        for column in self.__table__.columns:
            if column.name in ('id', 'updated_at'):
                continue
            d[column.name] = getattr(self, column.name)
        return d


def validate_settings_patch(updates, current_weights=None):
    """Return a cleaned copy of `updates` or raise SettingsValidationError."""
    if not isinstance(updates, dict):
        raise SettingsValidationError(['settings patch must be an object'])

    errors = []
    cleaned = {}
    for key, value in updates.items():
        if key in BOOL_FIELDS:
            if not isinstance(value, bool):
                errors.append(f'{key} must be a boolean')
                continue
            cleaned[key] = value
        elif key in DAY_COUNT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                errors.append(f'{key} must be a non-negative integer')
                continue
            cleaned[key] = value
        elif key in TIME_FIELDS:
            try:
                parse_time_of_day(value)
            except ConfigurationError as e:
                errors.append(f'{key}: {e}')
                continue
            cleaned[key] = value
        elif key == 'weekly_report_day':
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 6:
                errors.append('weekly_report_day must be an integer between 0 (Sunday) and 6')
                continue
            cleaned[key] = value
        elif key == 'escalation_action':
            if value not in ESCALATION_ACTIONS:
                errors.append(f'escalation_action must be one of {", ".join(ESCALATION_ACTIONS)}')
                continue
            cleaned[key] = value
        elif key == 'escalation_manager_id':
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                errors.append('escalation_manager_id must be a user id or null')
                continue
            cleaned[key] = value
        elif key == 'scoring_weights':
            if not isinstance(value, dict):
                errors.append('scoring_weights must be an object')
                continue
            unknown = sorted(set(value) - set(DEFAULT_SCORING_WEIGHTS))
            if unknown:
                errors.append(f'unknown scoring weights: {", ".join(unknown)}')
                continue
            merged = dict(current_weights or DEFAULT_SCORING_WEIGHTS)
            merged.update(value)
            try:
                resolve_weights(merged)
            except ConfigurationError as e:
                errors.append(str(e))
                continue
            cleaned[key] = merged
        elif key == 'weekly_report_recipients':
            if not isinstance(value, list) or not all(isinstance(v, str) and '@' in v for v in value):
                errors.append('weekly_report_recipients must be a list of email addresses')
                continue
            cleaned[key] = [v.strip() for v in value]
        else:
            errors.append(f'unknown setting: {key}')

    if errors:
        raise SettingsValidationError(errors)
    return cleaned
