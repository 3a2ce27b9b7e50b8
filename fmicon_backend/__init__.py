"""Backend utilities for the FM icon converter service.

This package intentionally keeps FastAPI route handlers thin:
- per-request workspaces + TTL-based result registry
- safe file serving / path handling
- ZIP import/export with Zip Slip protection
- the icon converter itself

Security note:
Result IDs are treated as capability tokens (96 random bits). Anyone with the
id can download that result until it expires, so never log or expose
filesystem paths in responses.
"""
