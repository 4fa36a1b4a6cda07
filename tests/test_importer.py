"""
Tests for book import (TXT and EPUB parsing)

Run with: pytest tests/test_importer.py -v
"""
from pathlib import Path

import pytest

from novel_studio.importer import (
    BookImporter,
    FULL_TEXT_TITLE,
    PREFACE_TITLE,
    UNTITLED_CHAPTER_TITLE,
    parse_epub,
    parse_txt,
)
from novel_studio.tasks import TaskStatus


def _write(path, text):
    path.write_text(text, encoding='utf-8')
    return str(path)


class TestParseTxt:

    def test_chinese_headings(self, temp_dir):
        path = _write(temp_dir / "novel.txt", "\n".join([
            "作者的话",
            "",
            "第一章 开始",
            "天黑了。",
            "雨还在下。",
            "第2章 清晨",
            "太阳升起。",
        ]))

        chapters = parse_txt(path)

        assert [c.title for c in chapters] == [PREFACE_TITLE, "第一章 开始", "第2章 清晨"]
        assert [line.text for line in chapters[1].lines] == ["天黑了。", "雨还在下。"]
        # Line ids are global and skip headings and blank lines
        assert [line.id for c in chapters for line in c.lines] == [0, 1, 2, 3]
        assert chapters[1].lines[0].source_info == "novel.txt:4"

    def test_english_headings(self, temp_dir):
        path = _write(temp_dir / "novel.txt", "Chapter 1\nIt begins.\nCHAPTER II\nIt goes on.\nEpilogue\nThe end.")

        chapters = parse_txt(path)

        assert [c.title for c in chapters] == ["Chapter 1", "CHAPTER II", "Epilogue"]

    def test_separator_framed_title(self, temp_dir):
        path = _write(temp_dir / "novel.txt", "\n".join([
            "-----",
            "楔子",
            "-----",
            "很久以前。",
            "=====",
            "The Road",
            "=====",
            "Walking on.",
        ]))

        chapters = parse_txt(path)

        assert [c.title for c in chapters] == ["楔子", "The Road"]
        assert [line.text for line in chapters[1].lines] == ["Walking on."]

    def test_special_titles(self, temp_dir):
        path = _write(temp_dir / "novel.txt", "\n".join([
            "锲子",
            "很久以前。",
            "第一章 开始",
            "天黑了。",
            "尾声",
            "天亮了。",
        ]))

        chapters = parse_txt(path)

        assert [c.title for c in chapters] == ["锲子", "第一章 开始", "尾声"]
        assert [line.text for line in chapters[0].lines] == ["很久以前。"]

    def test_long_lines_are_not_headings(self, temp_dir):
        sentence = "Chapter 1 " + "was a very long sentence that keeps going " * 3
        path = _write(temp_dir / "novel.txt", f"{sentence}\nmore text")

        chapters = parse_txt(path)

        assert len(chapters) == 1
        assert chapters[0].title == FULL_TEXT_TITLE
        assert len(chapters[0].lines) == 2

    def test_plain_text_is_one_chapter(self, temp_dir):
        path = _write(temp_dir / "novel.txt", "Just some text.\n\nAnd a bit more.")

        chapters = parse_txt(path)

        assert [c.title for c in chapters] == [FULL_TEXT_TITLE]
        assert chapters[0].lines[1].original_content == "And a bit more."

    def test_empty_file(self, temp_dir):
        assert parse_txt(_write(temp_dir / "empty.txt", "")) == []


class TestParseEpub:

    def test_chapters_follow_spine_and_toc(self, simple_epub):
        chapters, cover = parse_epub(str(simple_epub))

        assert [c.title for c in chapters] == ["Chapter 1", "Chapter 2"]
        assert [line.text for line in chapters[0].lines] == [
            "The Beginning", "It was a dark night.", "The rain kept falling."
        ]
        assert [line.text for line in chapters[1].lines] == ["Morning", "The sun rose.", "Bread", "Tea"]
        assert [line.id for c in chapters for line in c.lines] == list(range(7))
        assert cover is None

    def test_heading_title_and_cover(self, epub_with_cover, temp_dir):
        target = temp_dir / "project"
        target.mkdir()

        chapters, cover = parse_epub(str(epub_with_cover), target)

        assert [c.title for c in chapters] == ["Chapter 1", "Extra Scene"]
        assert cover is not None
        assert Path(cover).parent == target
        assert Path(cover).read_bytes().startswith(b'\xff\xd8')


class TestBookImporter:

    def test_import_txt(self, storage, temp_dir):
        source = _write(temp_dir / "My Novel.txt", "第一章 开始\n天黑了。\n第二章 结束\n天亮了。")

        entry = BookImporter(storage).import_book(source)

        assert entry.title == "My Novel"
        assert entry.file_type == "txt"
        assert entry.original_path == source
        for _, track in entry.tracks():
            assert track.status == TaskStatus.NOT_STARTED

        book = storage.load_book_detail(entry.id)
        assert book.title == "My Novel"
        assert [c.title for c in book.chapters] == ["第一章 开始", "第二章 结束"]
        assert Path(book.cached_path).parent == storage.book_dir(entry.id)
        assert entry.sub_cache_path == str(storage.book_dir(entry.id) / f"{entry.id}.json")

    def test_import_epub(self, storage, epub_with_cover):
        entry = BookImporter(storage).import_book(str(epub_with_cover))

        assert entry.file_type == "epub"
        assert entry.cover_image_path is not None
        assert len(storage.load_book_detail(entry.id).chapters) == 2

    def test_unsupported_type(self, storage, temp_dir):
        source = _write(temp_dir / "notes.pdf", "not really a pdf")
        with pytest.raises(ValueError):
            BookImporter(storage).import_book(source)
        assert [p for p in storage.cache_dir.iterdir() if p.is_dir()] == []

    def test_missing_file(self, storage, temp_dir):
        with pytest.raises(FileNotFoundError):
            BookImporter(storage).import_book(str(temp_dir / "missing.txt"))

    def test_broken_epub_leaves_no_cache(self, storage, temp_dir):
        source = _write(temp_dir / "broken.epub", "this is not a zip file")
        with pytest.raises(Exception):
            BookImporter(storage).import_book(source)
        assert [p for p in storage.cache_dir.iterdir() if p.is_dir()] == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
