#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

For local development only; the booking API reloads on source changes.
"""
import os

import uvicorn

if __name__ == "__main__":
    os.environ.setdefault("ENVIRONMENT", "development")
    print("🚀 Starting booking API in development mode...")
    print("🌐 Access at: http://localhost:8000")
    print("📚 API Docs: http://localhost:8000/docs")

    uvicorn.run("beautonomi.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
