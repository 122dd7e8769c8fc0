# Routes package init
"""
PicStash Backend — API Routes Package
======================================

Route Inventory:
    - files.py:   GET/HEAD/OPTIONS/POST/PUT/PATCH/DELETE /api/files
                  (the upload handler, dispatched by method)
    - health.py:  GET /health

Routes stay THIN: they pull parameters and headers out of the request, call
UploadService and pick a serializer. File rules live in the services.
"""
