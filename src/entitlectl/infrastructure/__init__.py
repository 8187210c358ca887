"""Infrastructure layer — database, ledger queries, and the Store repository."""
