"""
Pydantic models for API request/response schemas.

Kept separate from the pipeline's internal types so the HTTP contract can
evolve on its own.
"""
