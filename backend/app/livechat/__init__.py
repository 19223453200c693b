"""Livechat module for the customer-support chat widget.

Provides:
    - Visitor and room persistence (DuckDB)
    - Message delivery to room history and WebSocket subscribers
    - POST /api/v1/livechat/upload/{rid} for visitor file uploads
"""
