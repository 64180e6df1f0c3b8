"""Pydantic request/response schemas shared by both transports."""
