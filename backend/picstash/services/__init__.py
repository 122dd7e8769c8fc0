# Services package init
"""
PicStash Backend — Services Layer
==================================

What:  Business logic between the upload route (HTTP) and the upload directory.

Service Inventory:
    - FileNamer:       sanitizes client names and yields collision-free candidates
    - UploadValidator: ordered upload rules, first failure wins
    - FileStore:       abstract storage; LocalFileStore writes with aiofiles
    - ImageProcessor:  Pillow probing, EXIF orientation, resizing
    - UploadService:   orchestrates the above for each handler operation
    - serializer:      turns results into the responses the upload widget reads

Every collaborator is injected into UploadService, so tests (or deployments)
can swap the store or the validator without touching the route.
"""
