#!/usr/bin/env python3
"""
Seed test data for verifying the CRM automations locally.

Creates admins and leads covering key scenarios:
  1. Fresh lead auto-qualified and round-robin assigned
  2. Cold lead (last contact weeks ago)
  3. Overdue next action
  4. Proposal pending past the reminder threshold
  5. Inactive lead eligible for escalation
  6. WON lead converted to a client

Usage:
    python scripts/seed_test_data.py          # seed all scenarios
    python scripts/seed_test_data.py --clear  # wipe seeded data first

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import argparse
from datetime import datetime, timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from leadflow import create_app
from leadflow.database import get_session, engine, Base
from leadflow.models.lead import Lead
from leadflow.models.lead_activity import LeadActivity
from leadflow.models.client_account import ClientAccount, Project
from leadflow.models.user import User
from leadflow.services.leads import create_lead, update_lead


# Seeded users share this email domain so we can clear them
SEED_DOMAIN = '@seed.local'

ADMINS = [
    {'name': 'Camille Durand', 'email': 'camille' + SEED_DOMAIN, 'role': 'SUPER_ADMIN'},
    {'name': 'Hugo Martin',    'email': 'hugo' + SEED_DOMAIN,    'role': 'ADMIN'},
    {'name': 'Léa Bernard',    'email': 'lea' + SEED_DOMAIN,     'role': 'ADMIN'},
]


def _no_email(kind, payload):
    print(f"    [email skipped] {kind} -> {payload.get('to')}")
    return {'sent': False, 'error': 'seed run'}


def seed_admins(session):
    users = []
    for spec in ADMINS:
        user = session.query(User).filter_by(email=spec['email']).first()
        if user is None:
            user = User(**spec)
            session.add(user)
            session.commit()
        users.append(user)
    print(f"  {len(users)} admins")
    return users


def _backdate(session, lead, **fields):
    """Write timestamps directly — bypasses updated_at's onupdate."""
    session.query(Lead).filter_by(id=lead.id).update(fields, synchronize_session=False)
    session.commit()


def seed_leads(session, admins):
    now = datetime.now()
    actor = admins[0].id

    lead, _, _ = create_lead(session, {
        'company': 'Atelier Nova', 'contact_name': 'Inès Roux', 'contact_email': 'ines@ateliernova.fr',
        'contact_phone': '06 12 34 56 78', 'source': 'Referral', 'budget': 15000, 'priority': 'HAUTE',
    }, actor_id=actor, dispatch=_no_email)
    print(f"  1. {lead.company}: {lead.status}, assigned to {lead.assigned_to}")

    lead, _, _ = create_lead(session, {
        'company': 'Boulangerie Pivot', 'contact_name': 'Marc Pivot', 'status': 'CONTACTED',
    }, actor_id=actor, dispatch=_no_email)
    _backdate(session, lead, last_contact_at=now - timedelta(days=21))
    print(f"  2. {lead.company}: cold")

    lead, _, _ = create_lead(session, {
        'company': 'Studio Kelvin', 'contact_email': 'hello@kelvin.studio', 'status': 'DEMO',
    }, actor_id=actor, dispatch=_no_email)
    _backdate(session, lead, next_action_at=now - timedelta(days=4))
    print(f"  3. {lead.company}: next action overdue")

    lead, _, _ = create_lead(session, {
        'company': 'Maison Solène', 'contact_email': 'contact@solene.fr', 'status': 'PROPOSAL', 'budget': 8000,
    }, actor_id=actor, dispatch=_no_email)
    _backdate(session, lead, status_changed_at=now - timedelta(days=10))
    print(f"  4. {lead.company}: proposal pending 10 days")

    lead, _, _ = create_lead(session, {
        'company': 'Garage Lumière', 'status': 'QUALIFIED',
    }, actor_id=actor, dispatch=_no_email)
    _backdate(session, lead, updated_at=now - timedelta(days=15))
    print(f"  5. {lead.company}: inactive 15 days")

    lead, _, _ = create_lead(session, {
        'company': 'Cabinet Arlo', 'contact_name': 'Paul Arlo', 'contact_email': 'paul@arlo.fr',
        'source': 'Ads', 'budget': 4200,
    }, actor_id=actor, dispatch=_no_email)
    lead, _ = update_lead(session, lead.id, {'status': 'WON'}, actor_id=actor, dispatch=_no_email)
    print(f"  6. {lead.company}: WON, client {lead.client_account_id}")


def clear_seeded(session):
    seeded_ids = [u.id for u in session.query(User).filter(User.email.like('%' + SEED_DOMAIN)).all()]
    if not seeded_ids:
        return
    lead_ids = [l.id for l in session.query(Lead).filter(Lead.created_by.in_(seeded_ids)).all()]
    session.query(LeadActivity).filter(LeadActivity.lead_id.in_(lead_ids)).delete(synchronize_session=False)
    session.query(Project).filter(Project.lead_id.in_(lead_ids)).delete(synchronize_session=False)
    session.query(Lead).filter(Lead.id.in_(lead_ids)).update({'client_account_id': None}, synchronize_session=False)
    session.query(ClientAccount).filter(ClientAccount.source_lead_id.in_(lead_ids)).delete(synchronize_session=False)
    session.query(Lead).filter(Lead.id.in_(lead_ids)).delete(synchronize_session=False)
    session.query(User).filter(User.id.in_(seeded_ids)).delete(synchronize_session=False)
    session.commit()
    print(f"Cleared {len(lead_ids)} seeded leads")


def main():
    parser = argparse.ArgumentParser(description='Seed CRM test data')
    parser.add_argument('--clear', action='store_true', help='Remove seeded data before seeding')
    args = parser.parse_args()

    create_app()
    Base.metadata.create_all(engine)

    session = get_session()
    try:
        if args.clear:
            clear_seeded(session)
        print("Seeding CRM data...")
        admins = seed_admins(session)
        seed_leads(session, admins)
        print("Done.")
    finally:
        session.close()


if __name__ == '__main__':
    main()
