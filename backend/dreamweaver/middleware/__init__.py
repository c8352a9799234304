"""
DreamWeaver Backend — Middleware Package
=========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first, as registered in main.py):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    Rate limiting rejects abusive clients before any other work. The request
    ID is assigned next so the access log line and any error body carry it.
    Responses travel the chain in reverse, so X-Request-ID is attached and the
    duration is measured after the route has finished.
"""
