"""
ClientAccount + Project models — the targets of WON-lead conversion.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, Float, Text, DateTime, ForeignKey

from leadflow.database import Base


class ClientAccount(Base):
    __tablename__ = 'client_accounts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    contact_name = Column(Text, default='')
    email = Column(Text, default='', index=True)
    phone = Column(Text, default='')
    source_lead_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.now)


class Project(Base):
    __tablename__ = 'projects'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default='DRAFT')
    client_account_id = Column(Integer, ForeignKey('client_accounts.id'), nullable=False)
    lead_id = Column(Integer, ForeignKey('leads.id'), nullable=True, index=True)
    budget = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
