"""Pydantic schemas for stored assistant messages."""
