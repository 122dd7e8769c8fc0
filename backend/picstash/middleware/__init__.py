# Middleware package init
"""
PicStash Backend — Middleware Package
======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Request ID] → [Logging] → [CORS] → Route Handler

    1. Request ID: correlation ID for every log line of the request
    2. Logging: one access line per request, level chosen by status
    3. CORS: FastAPI's CORSMiddleware answers preflight requests; the upload
       route adds the Access-Control-* answer to plain HEAD / OPTIONS itself
"""
