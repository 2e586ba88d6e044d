#!/usr/bin/env python3
"""
Create all booking engine tables.
Run once against a fresh database; existing tables are left as they are.
"""
import sys
from pathlib import Path

# Add the backend directory to the Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from core.database import init_db


def run():
    try:
        print("Creating booking engine tables...")
        init_db()
        print("✅ Tables ready")
    except Exception as e:
        print(f"❌ init_db failed: {e}")
        return False
    return True


if __name__ == "__main__":
    success = run()
    sys.exit(0 if success else 1)
