"""Message store (DuckDB).

Services:
    - ChatStore: users, teams and chat messages with soft-delete and read receipts.
"""
