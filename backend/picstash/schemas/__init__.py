"""Schemas package: API contracts for the upload handler."""
