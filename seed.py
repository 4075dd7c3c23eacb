import argparse
import logging
import random
from datetime import date, timedelta
from typing import List, Optional

from config import get_settings
from database import TaskStore
from logging_setup import setup_logging
from models import PRIORITY_MAX, PRIORITY_MIN, Task, TaskStatus

logger = logging.getLogger(__name__)

_WORDS = [
    "review", "deploy", "refactor", "document", "test", "plan",
    "design", "migrate", "benchmark", "audit", "cleanup", "release",
]


def _random_task(rng: random.Random, today: date) -> dict:
    title = " ".join(rng.sample(_WORDS, 3)).capitalize()
    return {
        "title": title,
        "description": rng.choice([None, f"Auto-generated: {title.lower()}"]),
        "status": rng.choice(list(TaskStatus)),
        "priority": rng.randint(PRIORITY_MIN, PRIORITY_MAX),
        "due_date": rng.choice([None, today + timedelta(days=rng.randint(-7, 30))]),
    }


def seed_tasks(
    store: TaskStore,
    *,
    random_count: int = 10,
    today: Optional[date] = None,
    rng: Optional[random.Random] = None,
) -> List[Task]:
    """
    Insert the sample tasks plus ``random_count`` random ones.

    Writes go straight to the store, so nothing is broadcast.
    """
    today = today or date.today()
    rng = rng or random.Random()

    samples = [
        {
            "title": "Complete Project Documentation",
            "description": "Write comprehensive documentation for the project",
            "status": TaskStatus.PENDING,
            "priority": 3,
            "due_date": today + timedelta(days=5),
        },
        {
            "title": "Fix Bug in Authentication",
            "description": "Investigate and fix the authentication bug",
            "status": TaskStatus.IN_PROGRESS,
            "priority": 4,
            "due_date": today + timedelta(days=2),
        },
        {
            "title": "Implement New Feature",
            "description": "Add the new feature as per requirements",
            "status": TaskStatus.COMPLETED,
            "priority": 2,
            "due_date": today - timedelta(days=1),
        },
        {
            "title": "Code Review",
            "description": "Review the latest pull requests",
            "status": TaskStatus.PENDING,
            "priority": 1,
            "due_date": None,
        },
    ]
    samples += [_random_task(rng, today) for _ in range(max(0, random_count))]

    created = [store.create(fields) for fields in samples]
    logger.info("Seeded %d tasks into %s", len(created), store.db_path)
    return created


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fill the task database with sample data.")
    parser.add_argument("--db", help="database path (default: TASKS_DB_PATH or todo.db)")
    parser.add_argument("--random", type=int, default=10, help="number of random tasks")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(level=settings.log_level)
    seed_tasks(TaskStore(args.db or settings.db_path), random_count=args.random)
