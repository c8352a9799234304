# Services package init
"""
DreamWeaver Backend — Services Layer
======================================

What:  Business logic layer sitting between routes (HTTP) and database (persistence).
Why:   Routes handle HTTP; services own ownership checks and the sleep-session
       state machine, and can be tested without HTTP.

Service Inventory:
    - session_state:     derives "active" from wake-ups; finds a user's active session
    - session_lifecycle: begin session, record wake-up, query active session
    - bedroom_service:   bedroom CRUD and the ownership check used at session start
    - history_service:   listing, lookup, metadata edits and deletion of sessions
"""
