"""Chat module: rooms, memberships, message logs and the command endpoint.

Components:
    - ConversationStore: in-memory rooms, logs, sessions, membership index.
    - MembershipManager: join/leave/auto-join/restore semantics.
    - MessageEngine: send/edit/delete with author checks, room queries.
    - CommandDispatcher: typed command -> typed result.
"""
