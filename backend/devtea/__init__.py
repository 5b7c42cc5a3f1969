"""DevTea chat backend.

A demo chat service: topic rooms, direct messages, edit/delete and presence,
served from process-local memory over a polling command protocol.

Modules:
    - chat: conversation store, membership, message engine, command endpoint
    - client: async polling client with retry and connection state machine
    - rooms: public room listing
    - auth: mock account bootstrap (user directory)
    - health: status summary
"""
__version__ = "0.1.0"
