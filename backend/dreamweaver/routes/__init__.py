"""
DreamWeaver Backend — API Routes Package
=========================================

Route Inventory:
    - sleep_sessions.py:
        POST   /api/sleep-sessions                     begin a session
        POST   /api/sleep-sessions/active/wake-ups     record a wake-up
        GET    /api/sleep-sessions/active              active-session query
        GET    /api/sleep-sessions                     history, newest first
        GET    /api/sleep-sessions/by-date/{date}      session begun on a day
        GET    /api/sleep-sessions/{id}
        PATCH  /api/sleep-sessions/{id}
        PATCH  /api/sleep-sessions/{id}/wake-ups/{index}/back-to-bed
        DELETE /api/sleep-sessions/{id}
    - bedrooms.py:   CRUD under /api/bedrooms
    - health.py:     GET /health

Routes stay thin: resolve the caller, call one service method, shape the
HTTP response. Errors are raised as DreamWeaverError subclasses and turned
into JSON by the handlers in main.py.
"""
