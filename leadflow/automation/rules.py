"""
Automation rule engine — one transition function for lead creation and updates.

Creation is a transition from no previous state. The engine works on plain
dicts of lead fields, performs no I/O (beyond asking the allocator and the
lazy assignee pool) and returns the finalized state plus ordered effect
requests for the EffectExecutor.

Rules, each gated by a CrmSettings toggle:
  - auto-qualify LEAD → QUALIFIED when budget > 0 and a source is set
  - status entry rules (CONTACTED / DEMO / PROPOSAL / WON / LOST)
  - lead scoring
  - round-robin assignment of unassigned leads
  - ASSIGNED activity + assignment email when the owner changes
  - WON → client conversion request
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from leadflow.config import TERMINAL_STATUSES
from leadflow.models.lead import LEAD_DEFAULTS, LEAD_FIELDS
from leadflow.automation.effects import LogActivity, Notify, ConvertToClient
from leadflow.automation.round_robin import RoundRobinAllocator
from leadflow.automation.scoring import calculate_lead_score, SCORING_FIELDS

logger = logging.getLogger('automation.rules')

# Fields only the engine may write
ENGINE_OWNED_FIELDS = ('status_changed_at', 'score')


@dataclass
class TransitionOutcome:
    """Result of one transition: the new state, what changed, and what to do next."""
    state: Dict[str, Any]
    changes: Dict[str, Any]
    effects: List[Any] = field(default_factory=list)
    previous_status: Optional[str] = None
    status_changed: bool = False


def should_auto_qualify(lead):
    """Budget > 0 AND a non-blank source."""
    budget = lead.get('budget')
    return budget is not None and budget > 0 and bool((lead.get('source') or '').strip())


def lead_summary(state):
    """The lead fields an assignment email shows."""
    return {
        'company': state.get('company'),
        'contact_name': state.get('contact_name'),
        'contact_email': state.get('contact_email'),
        'contact_phone': state.get('contact_phone'),
        'source': state.get('source'),
        'priority': state.get('priority'),
        'budget': state.get('budget'),
    }


class RuleEngine:
    """
    Applies the automation rules to lead transitions.

    Args:
        allocator: RoundRobinAllocator shared with the escalation sweep.
        clock:     zero-arg callable returning "now" (naive local datetime).
    """

    def __init__(self, allocator: RoundRobinAllocator = None, clock: Callable[[], datetime] = None):
        self.allocator = allocator if allocator is not None else RoundRobinAllocator()
        self.clock = clock or datetime.now

    def apply_on_create(self, draft, settings, assignee_pool=None, actor_id=None) -> TransitionOutcome:
        return self.transition(None, draft, settings, assignee_pool=assignee_pool, actor_id=actor_id)

    def apply_on_transition(self, existing, patch, settings, assignee_pool=None, actor_id=None) -> TransitionOutcome:
        return self.transition(existing, patch, settings, assignee_pool=assignee_pool, actor_id=actor_id)

    def transition(self, previous, patch, settings, assignee_pool=None, actor_id=None) -> TransitionOutcome:
        """
        Run every rule for one create/update.

        Args:
            previous:      current lead state dict, or None when creating
            patch:         fields supplied by the caller
            settings:      CrmSettings (or any object with the same attributes)
            assignee_pool: zero-arg callable returning the ordered eligible ids;
                           only called when round-robin actually needs it
            actor_id:      user performing the mutation (None for automation)

        Raises:
            ScoringConfigError when scoring is on and the weights are malformed.
        """
        now = self.clock()
        creating = previous is None
        before = dict(LEAD_DEFAULTS) if creating else {name: previous.get(name) for name in LEAD_FIELDS}
        patch = self._sanitize_patch(before, patch)

        state = {**before, **patch}
        previous_status = None if creating else before['status']

        # ── Auto-qualification ───────────────────────────────────────────
        # An explicit move back to LEAD is respected.
        demoted = (not creating and 'status' in patch
                   and patch['status'] == 'LEAD' and previous_status != 'LEAD')
        auto_qualified = False
        if (settings.auto_qualify_enabled and state['status'] == 'LEAD'
                and not demoted and should_auto_qualify(state)):
            state['status'] = 'QUALIFIED'
            auto_qualified = True

        # ── Status entry rules ───────────────────────────────────────────
        status_changed = state['status'] != previous_status
        if status_changed:
            state['status_changed_at'] = now
            self._apply_entry_rules(state, settings, now)

        # ── Scoring (before assignment so a config error touches nothing) ─
        if settings.scoring_enabled:
            touched = creating or state.get('score') is None or any(
                state.get(name) != before.get(name) for name in SCORING_FIELDS
            )
            if touched:
                state['score'] = calculate_lead_score(state, settings.scoring_weights)

        # ── Round-robin ──────────────────────────────────────────────────
        round_robin = False
        if (state['assigned_to'] is None and settings.round_robin_enabled
                and (creating or ('assigned_to' not in patch and state['status'] not in TERMINAL_STATUSES))):
            pool = assignee_pool() if assignee_pool else []
            state['assigned_to'] = self.allocator.next_assignee(pool)
            round_robin = state['assigned_to'] is not None

        effects = self._build_effects(
            before, state, settings, actor_id,
            creating=creating,
            previous_status=previous_status,
            status_changed=status_changed,
            auto_qualified=auto_qualified,
            round_robin=round_robin,
        )

        changes = {name: value for name, value in state.items()
                   if creating or before.get(name) != value}

        return TransitionOutcome(
            state=state,
            changes=changes,
            effects=effects,
            previous_status=previous_status,
            status_changed=status_changed,
        )

    # ── Internals ────────────────────────────────────────────────────────

    @staticmethod
    def _sanitize_patch(before, patch):
        cleaned = {name: value for name, value in (patch or {}).items()
                   if name in LEAD_FIELDS and name not in ENGINE_OWNED_FIELDS}

        linked = before.get('client_account_id')
        if 'client_account_id' in cleaned and linked and cleaned['client_account_id'] != linked:
            logger.warning(
                "Ignoring client_account_id=%r — lead already linked to client %s",
                cleaned['client_account_id'], linked,
            )
            del cleaned['client_account_id']
        return cleaned

    @staticmethod
    def _apply_entry_rules(state, settings, now):
        status = state['status']
        if status == 'CONTACTED':
            if settings.auto_last_contact_on_contacted and not state['last_contact_at']:
                state['last_contact_at'] = now
        elif status == 'DEMO':
            if settings.auto_next_action_on_demo and not state['next_action_at']:
                state['next_action_at'] = now + timedelta(days=settings.demo_follow_up_days)
        elif status == 'PROPOSAL':
            if settings.auto_next_action_on_proposal and not state['next_action_at']:
                state['next_action_at'] = now + timedelta(days=settings.proposal_follow_up_days)
        elif status in TERMINAL_STATUSES:
            if settings.clear_next_action_on_close:
                state['next_action_at'] = None

    @staticmethod
    def _build_effects(before, state, settings, actor_id, *, creating, previous_status,
                       status_changed, auto_qualified, round_robin):
        effects = []
        log = bool(settings.activity_logging)

        if log and creating:
            effects.append(LogActivity(
                type='CREATED',
                label=f'Lead created for {state["company"]}',
                payload={'status': state['status']},
                actor_id=actor_id,
            ))
        elif log and status_changed and not auto_qualified:
            effects.append(LogActivity(
                type='STATUS_CHANGE',
                label=f'Status changed from {previous_status} to {state["status"]}',
                payload={'from': previous_status, 'to': state['status']},
                actor_id=actor_id,
            ))

        if log and auto_qualified:
            effects.append(LogActivity(
                type='AUTO_QUALIFIED',
                label='Lead qualified automatically (budget and source provided)',
                payload={'budget': state['budget'], 'source': state['source']},
                actor_id=None,
            ))

        assignee = state['assigned_to']
        if assignee is not None and assignee != before.get('assigned_to'):
            if log:
                effects.append(LogActivity(
                    type='ASSIGNED',
                    label='Lead assigned by round-robin' if round_robin else 'Lead assigned',
                    payload={'from': before.get('assigned_to'), 'to': assignee, 'round_robin': round_robin},
                    actor_id=None if round_robin else actor_id,
                ))
            if settings.email_on_assignment:
                effects.append(Notify(
                    kind='lead_assigned',
                    recipient_id=assignee,
                    payload={'lead': lead_summary(state)},
                ))

        if status_changed and state['status'] == 'WON' and not state.get('client_account_id'):
            effects.append(ConvertToClient(actor_id=actor_id, log_activity=log))

        return effects
