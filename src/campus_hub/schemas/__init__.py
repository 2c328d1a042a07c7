"""Pydantic schemas for the Campus Hub API."""
