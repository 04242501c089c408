"""Real-time team chat.

Components:
    - PresenceTracker: which identities are connected to which room.
    - MembershipAuthority: leader/member checks against the store.
    - ConnectionManager: WebSocket delivery per room.
    - ChatSession: per-connection state machine.
    - ChatHistoryService: history, soft delete and read receipts.
    - ChatServer: owns one instance of each of the above.
"""
