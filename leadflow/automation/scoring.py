"""
Lead scoring — additive points from budget, source, priority and contact info.

Pure and deterministic. Weights come from CrmSettings.scoring_weights; a weight
that is absent falls back to DEFAULT_SCORING_WEIGHTS, an explicit 0 is kept.
"""
from numbers import Real

from leadflow.config import DEFAULT_SCORING_WEIGHTS
from leadflow.errors import ScoringConfigError

MAX_SCORE = 100

# Lead fields whose change triggers a rescore
SCORING_FIELDS = ('budget', 'source', 'priority', 'contact_email', 'contact_phone')

_PRIORITY_WEIGHTS = {
    'URGENTE': 'priorityUrgent',
    'HAUTE': 'priorityHigh',
    'NORMALE': 'priorityNormal',
}


def resolve_weights(weights=None):
    """
    Merge caller weights over the defaults and validate them.

    Raises ScoringConfigError when the table is not a mapping or a value is
    not a non-negative number.
    """
    if weights is None:
        weights = {}
    if not isinstance(weights, dict):
        raise ScoringConfigError(f'scoring weights must be a mapping, got {type(weights).__name__}')

    resolved = dict(DEFAULT_SCORING_WEIGHTS)
    for key, value in weights.items():
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, Real):
            raise ScoringConfigError(f'scoring weight {key!r} must be a number, got {value!r}')
        if value < 0:
            raise ScoringConfigError(f'scoring weight {key!r} must be non-negative, got {value!r}')
        resolved[key] = value
    return resolved


def _budget_weight(budget):
    if budget is None:
        return None
    if budget > 10000:
        return 'budgetHigh'
    if budget >= 1000:
        return 'budgetMedium'
    if budget > 0:
        return 'budgetLow'
    return None


def _source_weight(source):
    source = (source or '').strip().lower()
    if not source:
        return None
    if source == 'referral':
        return 'sourceReferral'
    if source == 'ads':
        return 'sourceAds'
    return 'sourceOther'


def calculate_lead_score(lead, weights=None):
    """
    Score a lead (dict of lead fields) between 0 and 100.

    Returns an int. Missing fields contribute nothing.
    """
    w = resolve_weights(weights)

    keys = [
        _budget_weight(lead.get('budget')),
        _source_weight(lead.get('source')),
        _PRIORITY_WEIGHTS.get(lead.get('priority')),
    ]
    if (lead.get('contact_email') or '').strip():
        keys.append('hasEmail')
    if (lead.get('contact_phone') or '').strip():
        keys.append('hasPhone')

    score = sum(w[k] for k in keys if k)
    return int(min(score, MAX_SCORE))
