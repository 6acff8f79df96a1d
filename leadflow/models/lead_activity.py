"""
LeadActivity model — append-only audit trail of automation and user actions.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, Text, DateTime, JSON, ForeignKey, Index

from leadflow.database import Base


class LeadActivity(Base):
    __tablename__ = 'lead_activities'
    __table_args__ = (
        Index('ix_lead_activities_lead_created', 'lead_id', 'created_at'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey('leads.id'), nullable=False)
    type = Column(Text, nullable=False)    # CREATED, STATUS_CHANGE, ASSIGNED, AUTO_QUALIFIED, CONVERTED, ...
    label = Column(Text, nullable=False)
    payload = Column(JSON, default=dict)
    actor_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    def to_dict(self):
        return {
            'id': self.id,
            'lead_id': self.lead_id,
            'type': self.type,
            'label': self.label,
            'payload': self.payload or {},
            'actor_id': self.actor_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
