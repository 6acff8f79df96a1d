"""
Lead model — one row per sales prospect moving through the status funnel.

Automation reads and writes leads as plain state dicts (to_state / apply_state)
so the rule engine never touches the ORM object directly.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, Float, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import validates

from leadflow.database import Base


# Fields the rule engine reads/writes, in display order
LEAD_FIELDS = (
    'company',
    'contact_name',
    'contact_email',
    'contact_phone',
    'source',
    'status',
    'priority',
    'temperature',
    'budget',
    'score',
    'notes',
    'next_action_at',
    'last_contact_at',
    'status_changed_at',
    'assigned_to',
    'created_by',
    'client_account_id',
)

LEAD_DEFAULTS = {
    'company': '',
    'contact_name': '',
    'contact_email': '',
    'contact_phone': '',
    'source': '',
    'status': 'LEAD',
    'priority': 'NORMALE',
    'temperature': None,
    'budget': None,
    'score': None,
    'notes': '',
    'next_action_at': None,
    'last_contact_at': None,
    'status_changed_at': None,
    'assigned_to': None,
    'created_by': None,
    'client_account_id': None,
}


class Lead(Base):
    __tablename__ = 'leads'
    __table_args__ = (
        Index('ix_leads_status_priority', 'status', 'priority'),
        Index('ix_leads_assignee_next_action', 'assigned_to', 'next_action_at'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    company = Column(Text, nullable=False, index=True)
    contact_name = Column(Text, default='')
    contact_email = Column(Text, default='')
    contact_phone = Column(Text, default='')
    contact_phone_normalized = Column(Text, default='', index=True)
    source = Column(Text, default='')
    status = Column(Text, nullable=False, default='LEAD')
    priority = Column(Text, nullable=False, default='NORMALE')
    temperature = Column(Text, nullable=True)          # COLD / WARM / HOT
    budget = Column(Float, nullable=True)
    score = Column(Integer, nullable=True)             # 0-100
    notes = Column(Text, default='')
    next_action_at = Column(DateTime, nullable=True)
    last_contact_at = Column(DateTime, nullable=True)
    status_changed_at = Column(DateTime, nullable=True)
    assigned_to = Column(Integer, ForeignKey('users.id'), nullable=True)
    created_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    client_account_id = Column(Integer, ForeignKey('client_accounts.id'), nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @validates('contact_phone')
    def _sync_normalized_phone(self, key, value):
        from leadflow.automation.duplicates import normalize_phone
        self.contact_phone_normalized = normalize_phone(value)
        return value

    def to_state(self):
        """Snapshot of the automation-relevant fields."""
        return {name: getattr(self, name) for name in LEAD_FIELDS}

    def apply_state(self, changes):
        """Write a dict of field changes back onto the row."""
        for name, value in changes.items():
            if name in LEAD_FIELDS:
                setattr(self, name, value)

    def to_dict(self):
        d = {'id': self.id}
        for name in LEAD_FIELDS:
            value = getattr(self, name)
            d[name] = value.isoformat() if isinstance(value, datetime) else value
        d['created_at'] = self.created_at.isoformat() if self.created_at else None
        d['updated_at'] = self.updated_at.isoformat() if self.updated_at else None
        return d
