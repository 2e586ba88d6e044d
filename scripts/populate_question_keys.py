#!/usr/bin/env python3
"""
Backfill questions.question_key from the question display text.
Only rows without a key are touched, so the script can be re-run safely.

Usage: python scripts/populate_question_keys.py [--dry-run]
"""
import sys
from pathlib import Path

# Add the backend directory to the Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from sqlalchemy.orm import Session

from core.database import get_db
from models.template import Question
from utils.question_keys import generate_question_key, map_question_text_to_key


def populate_question_keys(db: Session, dry_run: bool = False) -> int:
    """Returns the number of questions given a key."""
    updated = 0
    questions = db.query(Question).filter(Question.question_key.is_(None)).order_by(Question.id).all()
    for q in questions:
        key = map_question_text_to_key(q.question) or generate_question_key(q.question)
        if not key:
            continue
        print(f"  - question {q.id}: {key}")
        if not dry_run:
            q.question_key = key
        updated += 1
    if dry_run:
        db.rollback()
    else:
        db.commit()
    return updated


def run(dry_run: bool = False):
    db = next(get_db())
    try:
        print("Populating question keys..." + (" (dry run)" if dry_run else ""))
        count = populate_question_keys(db, dry_run=dry_run)
        print(f"✅ {count} question(s) keyed")
    except Exception as e:
        db.rollback()
        print(f"❌ Backfill failed: {e}")
        return False
    finally:
        db.close()
    return True


if __name__ == "__main__":
    success = run(dry_run="--dry-run" in sys.argv[1:])
    sys.exit(0 if success else 1)
