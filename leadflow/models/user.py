"""
User model — admins who own leads, plus client logins.

Only active users with an admin role are eligible for lead assignment.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, Text, Boolean, DateTime

from leadflow.database import Base


class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False, unique=True)
    role = Column(Text, nullable=False, default='ADMIN')  # CLIENT / SUPER_ADMIN / ADMIN / VIEWER
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'is_active': self.is_active,
        }
