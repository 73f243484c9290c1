"""
FastAPI dependencies for request processing: shared pipeline objects and API key checks.
"""
