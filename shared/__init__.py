"""Shared package for the FieldVision sync subsystem.

This package contains code used by every layer of the client:

- Database models (models.py) - SQLAlchemy models for the local entity store and outbox
- Enums (enums.py) - Sync status, outbox enums and entity field enums
- Wire schemas (schemas.py) - Pydantic models for the remote API payloads
- Utility functions (utils.py) - Photo hashing, thumbnails and URL checks
"""
