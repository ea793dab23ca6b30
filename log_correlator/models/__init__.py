"""Pydantic models shared by the analyzer components."""
