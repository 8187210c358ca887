"""SQL for subjects, ledgers, the audit trail, and the side-effect outbox.

Write helpers take a ``Connection`` so they join the caller's transaction;
commit or rollback is the caller's responsibility.
"""
