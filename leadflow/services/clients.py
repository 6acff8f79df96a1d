"""
Client conversion — turn a WON lead into a client account and a draft project.

Both operations are idempotent: a lead is linked to at most one client and
gets at most one project.
"""
import logging

from sqlalchemy import func

from leadflow.models.client_account import ClientAccount, Project

logger = logging.getLogger('services.clients')


def find_client_by_email(session, email):
    email = (email or '').strip().lower()
    if not email:
        return None
    return (
        session.query(ClientAccount)
        .filter(func.lower(ClientAccount.email) == email)
        .order_by(ClientAccount.id)
        .first()
    )


def convert_lead_to_client(session, lead):
    """
    Ensure `lead` is linked to a client account.

    Reuses the client whose email matches the lead's contact email, otherwise
    creates one from the lead fields.

    Returns:
        (client, linked) — linked is False when the lead was already converted.
    """
    if lead.client_account_id:
        return session.get(ClientAccount, lead.client_account_id), False

    client = find_client_by_email(session, lead.contact_email)
    if client is None:
        client = ClientAccount(
            name=lead.company,
            contact_name=lead.contact_name or '',
            email=(lead.contact_email or '').strip(),
            phone=lead.contact_phone or '',
            source_lead_id=lead.id,
        )
        session.add(client)
        session.flush()  # get client.id
        logger.info("Created client %s from lead %s", client.id, lead.id)
    else:
        logger.info("Reusing client %s (matching email) for lead %s", client.id, lead.id)

    lead.client_account_id = client.id
    session.commit()
    return client, True


def create_project_for_lead(session, lead):
    """
    Create the draft project for a converted lead.

    Returns:
        (project, created) — created is False when the lead already has one.
    """
    existing = session.query(Project).filter_by(lead_id=lead.id).first()
    if existing is not None:
        return existing, False

    if not lead.client_account_id:
        raise ValueError(f"Lead {lead.id} has no client account to attach a project to")

    project = Project(
        name=lead.company,
        status='DRAFT',
        client_account_id=lead.client_account_id,
        lead_id=lead.id,
        budget=lead.budget,
    )
    session.add(project)
    session.commit()
    logger.info("Created project %s for lead %s", project.id, lead.id)
    return project, True
