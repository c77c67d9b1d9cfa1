"""Pydantic request/response schemas for the IceTime API."""
