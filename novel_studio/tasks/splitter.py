"""
Splits a parsed book into the chunks of a task track.

Chunk budgets are counted in gpt-4 tokens (tiktoken). The minimum chapter
size is counted in characters.
"""

import logging
from functools import lru_cache
from typing import Callable, List, Optional

import tiktoken

from ..book import Book, LineStructure
from ..config import TaskConfig
from .models import (
    IllustrationTaskChunk,
    TranslationTaskChunk,
    VideoGenerationTaskChunk,
)

logger = logging.getLogger(__name__)

TOKENIZER_MODEL = "gpt-4"

TokenCounter = Callable[[str], int]


@lru_cache(maxsize=None)
def _encoding():
    return tiktoken.encoding_for_model(TOKENIZER_MODEL)


def count_tokens(text: str) -> int:
    """Number of gpt-4 tokens in text."""
    return len(_encoding().encode(text))


def pack_lines(
    lines: List[LineStructure],
    max_tokens: int,
    counter: TokenCounter = count_tokens
) -> List[List[LineStructure]]:
    """Group consecutive lines so each group stays under max_tokens.

    A single line longer than max_tokens forms its own group.
    """
    groups: List[List[LineStructure]] = []
    current: List[LineStructure] = []
    current_size = 0

    for line in lines:
        line_size = counter(line.text)
        if current_size + line_size > max_tokens and current:
            groups.append(current)
            current = []
            current_size = 0
        current.append(line)
        current_size += line_size

    if current:
        groups.append(current)

    return groups


def distribute_scenes(sizes: List[int], scenes: int) -> List[int]:
    """Share a scene budget between chunks in proportion to their size.

    Every chunk but the last gets its rounded share; the last gets the
    remainder (never negative).
    """
    if not sizes:
        return []

    total = sum(sizes)
    if total <= 0:
        return [scenes] + [0] * (len(sizes) - 1)

    shares = []
    distributed = 0
    for size in sizes[:-1]:
        share = int(size / total * scenes + 0.5)
        shares.append(share)
        distributed += share
    shares.append(max(0, scenes - distributed))
    return shares


class TaskSplitter:
    """Builds chunk lists for the three track types."""

    def __init__(self, config: Optional[TaskConfig] = None, counter: Optional[TokenCounter] = None):
        self.config = config or TaskConfig()
        self.counter = counter or count_tokens

    def _is_long_enough(self, chapter, purpose: str) -> bool:
        if not chapter.lines:
            return False
        chars = chapter.char_count
        if chars < self.config.min_chapter_chars:
            logger.info(
                "Skipping chapter %r for %s: only %d characters",
                chapter.title, purpose, chars
            )
            return False
        return True

    def split_for_illustrations(
        self,
        book: Book,
        scenes_per_chapter: Optional[int] = None
    ) -> List[IllustrationTaskChunk]:
        """
        Split a book into illustration chunks.

        Args:
            book: Parsed book
            scenes_per_chapter: Scenes to request per chapter (config default if None)

        Returns:
            Chunks in reading order. Chunks that receive no scenes are dropped.
        """
        if scenes_per_chapter is None:
            scenes_per_chapter = self.config.scenes_per_chapter

        chunks: List[IllustrationTaskChunk] = []
        for chapter in book.chapters:
            if not self._is_long_enough(chapter, "illustration"):
                continue

            groups = pack_lines(chapter.lines, self.config.illustration_chunk_tokens, self.counter)
            sizes = [self.counter("\n".join(line.text for line in group)) for group in groups]
            scenes = distribute_scenes(sizes, scenes_per_chapter)

            for group, scene_count in zip(groups, scenes):
                if scene_count <= 0:
                    continue
                chunks.append(IllustrationTaskChunk(
                    chapter_id=chapter.id,
                    start_line_id=group[0].id,
                    end_line_id=group[-1].id,
                    scenes_to_generate=scene_count,
                ))

        return chunks

    def split_for_translations(self, book: Book) -> List[TranslationTaskChunk]:
        """Split a book into translation chunks."""
        chunks: List[TranslationTaskChunk] = []
        for chapter in book.chapters:
            if not self._is_long_enough(chapter, "translation"):
                continue

            for group in pack_lines(chapter.lines, self.config.translation_chunk_tokens, self.counter):
                chunks.append(TranslationTaskChunk(
                    chapter_id=chapter.id,
                    start_line_id=group[0].id,
                    end_line_id=group[-1].id,
                ))

        return chunks

    def split_for_videos(self, book: Book) -> List[VideoGenerationTaskChunk]:
        """One chunk per generated illustration."""
        return [
            VideoGenerationTaskChunk(
                chapter_id=chapter.id,
                line_id=line.id,
                source_image_path=image_path,
            )
            for chapter, line, image_path in book.iter_illustrations()
        ]
