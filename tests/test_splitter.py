"""
Unit tests for chunk planning

Run with: pytest tests/test_splitter.py -v
"""
import pytest

from novel_studio.book import LineStructure
from novel_studio.config import TaskConfig
from novel_studio.tasks import ChunkStatus, TaskSplitter
from novel_studio.tasks.splitter import count_tokens, distribute_scenes, pack_lines
from conftest import build_book


def _lines(*sizes):
    return [LineStructure(id=i, text="x" * size) for i, size in enumerate(sizes)]


class TestPackLines:

    def test_groups_stay_under_budget(self):
        groups = pack_lines(_lines(300, 300, 300, 300, 300), 1000, len)
        assert [[line.id for line in group] for group in groups] == [[0, 1, 2], [3, 4]]

    def test_exact_budget_fits(self):
        groups = pack_lines(_lines(500, 500), 1000, len)
        assert len(groups) == 1

    def test_oversized_line_is_its_own_group(self):
        groups = pack_lines(_lines(100, 2000, 100), 1000, len)
        assert [[line.id for line in group] for group in groups] == [[0], [1], [2]]

    def test_no_lines(self):
        assert pack_lines([], 1000) == []

    def test_counts_gpt4_tokens_by_default(self):
        lines = [LineStructure(id=i, text="hello world") for i in range(5)]
        groups = pack_lines(lines, 4)
        assert [[line.id for line in group] for group in groups] == [[0, 1], [2, 3], [4]]


class TestDistributeScenes:

    @pytest.mark.parametrize("sizes,scenes,expected", [
        ([902, 902, 601], 3, [1, 1, 1]),
        ([100], 3, [3]),
        ([10, 10, 80], 2, [0, 0, 2]),
        ([1, 1, 1, 1], 4, [1, 1, 1, 1]),
        ([300, 100], 2, [2, 0]),
        ([], 3, []),
    ])
    def test_proportional_shares(self, sizes, scenes, expected):
        assert distribute_scenes(sizes, scenes) == expected

    def test_empty_text_gets_everything_first(self):
        assert distribute_scenes([0, 0], 2) == [2, 0]


class TestTaskSplitter:

    @pytest.fixture
    def splitter(self, task_config):
        # One token per character keeps the expected boundaries readable
        return TaskSplitter(task_config, counter=len)

    def test_illustration_chunks(self, splitter, long_book):
        chunks = splitter.split_for_illustrations(long_book)

        assert [(c.chapter_id, c.start_line_id, c.end_line_id, c.scenes_to_generate) for c in chunks] == [
            ("ch0", 0, 2, 1),
            ("ch0", 3, 5, 1),
            ("ch0", 6, 7, 1),
            ("ch1", 8, 11, 3),
        ]
        assert all(c.status == ChunkStatus.PENDING for c in chunks)
        assert len({c.id for c in chunks}) == len(chunks)

    def test_illustration_chunks_without_scenes_are_dropped(self, splitter, long_book):
        chunks = splitter.split_for_illustrations(long_book, scenes_per_chapter=1)

        # Chapter 1 has three groups but only one scene, which goes to the last group
        assert [(c.chapter_id, c.start_line_id, c.scenes_to_generate) for c in chunks] == [
            ("ch0", 6, 1),
            ("ch1", 8, 1),
        ]

    def test_translation_chunks(self, splitter, long_book):
        chunks = splitter.split_for_translations(long_book)

        assert [(c.chapter_id, c.start_line_id, c.end_line_id) for c in chunks] == [
            ("ch0", 0, 1),
            ("ch0", 2, 3),
            ("ch0", 4, 5),
            ("ch0", 6, 7),
            ("ch1", 8, 10),
            ("ch1", 11, 11),
        ]

    def test_short_chapters_are_skipped(self, long_book):
        splitter = TaskSplitter(TaskConfig(cache_dir="/tmp/unused", min_chapter_chars=1500), counter=len)
        chunks = splitter.split_for_translations(long_book)
        assert {c.chapter_id for c in chunks} == {"ch0"}

    def test_video_chunks_follow_illustrations(self, splitter, long_book):
        long_book.chapters[0].lines[2].illustration_paths = ["/img/a.png", "/img/b.png"]
        long_book.chapters[1].lines[0].illustration_paths = ["/img/c.png"]

        chunks = splitter.split_for_videos(long_book)

        assert [(c.chapter_id, c.line_id, c.source_image_path) for c in chunks] == [
            ("ch0", 2, "/img/a.png"),
            ("ch0", 2, "/img/b.png"),
            ("ch1", 8, "/img/c.png"),
        ]

    def test_book_without_illustrations_has_no_video_work(self, splitter, long_book):
        assert splitter.split_for_videos(long_book) == []

    def test_default_splitter_uses_token_budget(self, task_config):
        prose = "The rain kept falling on the quiet harbour town. " * 40
        book = build_book("prose", [("Chapter 1", [prose] * 6)])

        chunks = TaskSplitter(task_config).split_for_translations(book)

        assert len(chunks) > 1
        for chunk in chunks:
            lines = book.chapters[0].lines[chunk.start_line_id:chunk.end_line_id + 1]
            assert sum(count_tokens(line.text) for line in lines) <= task_config.translation_chunk_tokens
        assert chunks[0].start_line_id == 0
        assert chunks[-1].end_line_id == 5

    def test_empty_book(self, splitter):
        book = build_book("empty", [])
        assert splitter.split_for_illustrations(book) == []
        assert splitter.split_for_translations(book) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
