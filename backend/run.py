#!/usr/bin/env python3
# backend/run.py
"""
Development server runner for the IceTime booking engine.
For local development only.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

os.environ.setdefault("ENVIRONMENT", "development")

import uvicorn

if __name__ == "__main__":
    print("Starting IceTime booking engine at http://localhost:8000")
    print("API docs: http://localhost:8000/docs")

    uvicorn.run("icetime.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
