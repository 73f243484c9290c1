"""
FastAPI application layer for the listing engine.

Exposes the listing pipeline to the mobile seller app: product photos in,
structured eBay listing payload (or a rejection/review outcome) out.
"""
