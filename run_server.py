#!/usr/bin/env python3
"""
EMR Adapter API Server
Run with: python run_server.py
"""

import sys
from pathlib import Path

# Make `src` importable when run from a checkout
sys.path.insert(0, str(Path(__file__).parent))

from src.api.main import app
import uvicorn

if __name__ == "__main__":
    print("Starting EMR Adapter API...")
    print("API Documentation: http://localhost:8000/docs")
    print("Health Check: http://localhost:8000/health")
    print("\nPress CTRL+C to stop\n")

    uvicorn.run(app, host="0.0.0.0", port=8000)
