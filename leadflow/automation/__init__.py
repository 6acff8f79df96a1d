"""
Lead automation core.

    scoring      — pure lead score calculator
    duplicates   — duplicate lead matcher
    round_robin  — round-robin assignee allocator
    signals      — cold / stale / overdue predicates
    rules        — transition function applied on create + update
    effects      — effect requests + best-effort executor
    escalation   — inactivity escalation sweep
    jobs         — daily / weekly digest jobs
    scheduler    — due checks, run markers, tick loop
"""
