#!/usr/bin/env python3
"""
Development server launcher for the listing engine API.

Starts uvicorn with auto-reload. Set GEMINI_API_KEY (or whatever api_key_env the
config names) before starting.
"""

import os
from pathlib import Path

import uvicorn

project_root = Path(__file__).parent
package_path = project_root / "listing_engine"

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print("Starting listing engine development server")
    print(f"Server will be available at: http://localhost:{port}")
    print(f"API documentation at: http://localhost:{port}/docs")

    uvicorn.run(
        "listing_engine.api.main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        reload_dirs=[str(package_path)],
        log_level=os.getenv("LOG_LEVEL", "info").lower()
    )
