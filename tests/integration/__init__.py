"""Integration tests for the Research Paper Studio API.

These tests drive the FastAPI application end to end:
- Project and section REST endpoints
- Generation runs against a scripted orchestrator
- Live progress and suggestions over the websocket
"""
