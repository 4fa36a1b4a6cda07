"""Task configuration for Novel Studio.

This module provides configuration options for the background task system:
where the bookshelf cache lives, how many tracks may run at once and how
books are split into chunks.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_CACHE_DIR = Path.home() / ".novel-studio" / "BookProjectsCache"


@dataclass
class TaskConfig:
    """Configuration for task scheduling and splitting.

    Attributes:
        cache_dir: Directory holding bookshelf.json and per-book caches
        max_concurrent_tasks: Global worker slot count (default: 1)
        scenes_per_chapter: Illustration scenes requested per chapter (default: 3)
        illustration_chunk_tokens: gpt-4 token budget of one illustration chunk (default: 5000)
        translation_chunk_tokens: gpt-4 token budget of one translation chunk (default: 4000)
        min_chapter_chars: Chapters shorter than this are skipped (default: 500)
        log_db_path: SQLite file for task logs (default: <cache_dir>/task_logs.db)
    """
    cache_dir: str = None
    max_concurrent_tasks: int = 1
    scenes_per_chapter: int = 3
    illustration_chunk_tokens: int = 5000
    translation_chunk_tokens: int = 4000
    min_chapter_chars: int = 500
    log_db_path: Optional[str] = None

    def __post_init__(self):
        """Initialize default values after dataclass init."""
        if self.cache_dir is None:
            self.cache_dir = str(DEFAULT_CACHE_DIR)
        if self.log_db_path is None:
            self.log_db_path = str(Path(self.cache_dir) / "task_logs.db")
        if self.max_concurrent_tasks < 1:
            raise ValueError(
                f"max_concurrent_tasks must be at least 1, got {self.max_concurrent_tasks}"
            )

    @classmethod
    def from_env(cls):
        """Load configuration from environment variables.

        Environment variables:
            NOVEL_STUDIO_CACHE_DIR: Cache directory (path)
            NOVEL_STUDIO_MAX_CONCURRENT_TASKS: Worker slot count (integer)
            NOVEL_STUDIO_SCENES_PER_CHAPTER: Scenes per chapter (integer)
            NOVEL_STUDIO_ILLUSTRATION_CHUNK_TOKENS: Illustration chunk budget in tokens (integer)
            NOVEL_STUDIO_TRANSLATION_CHUNK_TOKENS: Translation chunk budget in tokens (integer)
            NOVEL_STUDIO_MIN_CHAPTER_CHARS: Minimum chapter size in characters (integer)
            NOVEL_STUDIO_LOG_DB: Path to the task log database (path)

        Returns:
            TaskConfig instance with values from environment
        """
        return cls(
            cache_dir=os.getenv('NOVEL_STUDIO_CACHE_DIR') or None,
            max_concurrent_tasks=int(os.getenv('NOVEL_STUDIO_MAX_CONCURRENT_TASKS', '1')),
            scenes_per_chapter=int(os.getenv('NOVEL_STUDIO_SCENES_PER_CHAPTER', '3')),
            illustration_chunk_tokens=int(os.getenv('NOVEL_STUDIO_ILLUSTRATION_CHUNK_TOKENS', '5000')),
            translation_chunk_tokens=int(os.getenv('NOVEL_STUDIO_TRANSLATION_CHUNK_TOKENS', '4000')),
            min_chapter_chars=int(os.getenv('NOVEL_STUDIO_MIN_CHAPTER_CHARS', '500')),
            log_db_path=os.getenv('NOVEL_STUDIO_LOG_DB') or None,
        )
