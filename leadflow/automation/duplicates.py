"""
Duplicate lead matcher.

OR-combines the enabled predicates: case-insensitive email, case-insensitive
company, normalized phone. Phone matching needs at least PHONE_MIN_DIGITS
digits so short fragments never match.
"""
import logging
import re

from sqlalchemy import func, or_

from leadflow.config import DUPLICATE_RESULT_LIMIT, PHONE_MIN_DIGITS
from leadflow.models.lead import Lead

logger = logging.getLogger('automation.duplicates')

_PHONE_PUNCTUATION = re.compile(r'[\s\-\.\(\)/]')


def normalize_phone(raw):
    """
    Canonical phone form used for matching.

    Strips whitespace and punctuation; a +33 / 0033 country prefix becomes the
    national leading 0, so "+33 6 12 34 56 78" == "06.12.34.56.78".
    """
    phone = _PHONE_PUNCTUATION.sub('', raw or '')
    if phone.startswith('+33'):
        phone = '0' + phone[3:]
    elif phone.startswith('0033'):
        phone = '0' + phone[4:]
    return phone


def _digit_count(phone):
    return sum(ch.isdigit() for ch in phone)


def build_duplicate_conditions(fields, settings):
    """Return the list of SQLAlchemy predicates enabled for these candidate fields."""
    conditions = []

    email = (fields.get('contact_email') or '').strip()
    if settings.duplicate_check_email and email:
        conditions.append(func.lower(Lead.contact_email) == email.lower())

    company = (fields.get('company') or '').strip()
    if settings.duplicate_check_company and company:
        conditions.append(func.lower(Lead.company) == company.lower())

    phone = normalize_phone(fields.get('contact_phone'))
    if settings.duplicate_check_phone and phone:
        if _digit_count(phone) >= PHONE_MIN_DIGITS:
            conditions.append(Lead.contact_phone_normalized == phone)
        else:
            logger.debug("Phone %r below %d digits — not matched", phone, PHONE_MIN_DIGITS)

    return conditions


def find_duplicates(session, fields, settings, exclude_id=None, limit=DUPLICATE_RESULT_LIMIT):
    """
    Existing leads that look like the candidate.

    Returns [] without querying when detection is off or nothing can be matched.
    `exclude_id` skips the lead being edited.
    """
    if not settings.duplicate_detection_enabled:
        return []

    conditions = build_duplicate_conditions(fields, settings)
    if not conditions:
        return []

    query = session.query(Lead).filter(or_(*conditions))
    if exclude_id is not None:
        query = query.filter(Lead.id != exclude_id)
    return query.order_by(Lead.id).limit(limit).all()
