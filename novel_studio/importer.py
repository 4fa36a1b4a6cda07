"""
Book import: copies a source file into the cache, parses it into chapters
and lines, and creates the bookshelf entry for it.
"""

import logging
import os
import re
import uuid
import warnings
from pathlib import Path
from typing import List, Optional, Dict, Tuple

from bs4 import BeautifulSoup
from ebooklib import epub, ITEM_DOCUMENT, ITEM_COVER, ITEM_IMAGE

from .book import Book, ChapterStructure, LineStructure
from .tasks.models import BookshelfEntry
from .tasks.storage import BookshelfStorage

warnings.filterwarnings("ignore", category=UserWarning, module='ebooklib')
warnings.filterwarnings("ignore", category=FutureWarning, module='ebooklib')

logger = logging.getLogger(__name__)

SUPPORTED_FILE_TYPES = ('txt', 'epub')

# Chapter headings: "第一章", "第10回", "章一", "一、", "Chapter 12", "Prologue", ...
CHAPTER_HEADING_RE = re.compile(
    r'^\s*(?:'
    r'第\s*[零〇一二三四五六七八九十百千万\d]+\s*[章节回集卷部篇]'
    r'|章\s*[一二三四五六七八九十百千万]+'
    r'|[一二三四五六七八九十百千万]+[．、.]'
    r'|序章|楔子|锲子|前言|序言|序|引子|后记|尾声|番外'
    r'|chapter\s+(?:\d+|[ivxlcdm]+)\b'
    r'|prologue\b|epilogue\b'
    r')\s*.*$',
    re.IGNORECASE
)
SEPARATOR_RE = re.compile(r'^(?:-{5,}|={5,}|\*{5,})$')

MAX_HEADING_CHARS = 50
MAX_FRAMED_TITLE_CHARS = 30

PREFACE_TITLE = "Preface"
FULL_TEXT_TITLE = "Full text"
UNTITLED_CHAPTER_TITLE = "Untitled chapter"

BLOCK_TAGS = ['p', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'li', 'blockquote', 'pre']


def parse_txt(path: str) -> List[ChapterStructure]:
    """
    Split a plain-text novel into chapters.

    A heading line starts a new chapter, as does a short title framed by two
    identical separator lines. Text before the first heading becomes a
    preface chapter. If no heading is found the whole text is one chapter.
    Line ids count up across the whole book; blank lines are dropped.
    """
    with open(path, 'r', encoding='utf-8', errors='replace') as f:
        raw_lines = f.read().splitlines()

    source_file = os.path.basename(path)
    chapters: List[ChapterStructure] = []
    current_lines: List[LineStructure] = []
    current_title = PREFACE_TITLE
    line_id = 0

    def close_chapter():
        if current_lines:
            chapters.append(ChapterStructure(
                id=str(uuid.uuid4()),
                title=current_title,
                source_file=source_file,
                lines=list(current_lines),
            ))

    i = 0
    while i < len(raw_lines):
        text = raw_lines[i].strip()
        new_title = None

        if text:
            if SEPARATOR_RE.match(text) and i + 2 < len(raw_lines) and raw_lines[i + 2].strip() == text:
                framed = raw_lines[i + 1].strip()
                if framed and len(framed) < MAX_FRAMED_TITLE_CHARS:
                    new_title = framed
                    i += 2
            if new_title is None and len(text) < MAX_HEADING_CHARS and CHAPTER_HEADING_RE.match(text):
                new_title = text

        if new_title is not None:
            close_chapter()
            current_lines = []
            current_title = new_title
        elif text:
            current_lines.append(LineStructure(
                id=line_id,
                text=text,
                source_info=f"{source_file}:{i + 1}",
                original_content=raw_lines[i],
            ))
            line_id += 1
        i += 1

    close_chapter()

    # A preface alone means no heading was recognized
    if len(chapters) == 1 and chapters[0].title == PREFACE_TITLE:
        chapters[0].title = FULL_TEXT_TITLE

    return chapters


def _toc_titles(toc) -> Dict[str, str]:
    """Map document file names to the first TOC title pointing at them."""
    titles: Dict[str, str] = {}

    def walk(items):
        for item in items:
            if isinstance(item, tuple):
                section, children = item
                if isinstance(section, epub.Link):
                    titles.setdefault(section.href.split('#')[0], section.title)
                walk(children)
            elif isinstance(item, epub.Link):
                titles.setdefault(item.href.split('#')[0], item.title)

    walk(toc)
    return titles


def _extract_cover(book: epub.EpubBook, target_dir: Path) -> Optional[str]:
    cover_item = next(iter(book.get_items_of_type(ITEM_COVER)), None)
    if cover_item is None:
        cover_item = next(
            (item for item in book.get_items_of_type(ITEM_IMAGE)
             if 'cover' in item.get_name().lower()),
            None
        )
    if cover_item is None:
        return None

    suffix = Path(cover_item.get_name()).suffix or '.jpg'
    cover_path = target_dir / f"cover{suffix}"
    with open(cover_path, 'wb') as f:
        f.write(cover_item.get_content())
    return str(cover_path)


def parse_epub(path: str, target_dir: Optional[Path] = None) -> Tuple[List[ChapterStructure], Optional[str]]:
    """
    Split an EPUB into chapters, one per spine document with text.

    Chapter titles come from the table of contents, then from the first
    heading of the document. The cover image, if any, is written into
    target_dir.

    Returns:
        (chapters, cover_image_path)
    """
    book = epub.read_epub(path)
    titles = _toc_titles(book.toc)

    chapters: List[ChapterStructure] = []
    line_id = 0

    for item_id, _ in book.spine:
        item = book.get_item_with_id(item_id)
        if item is None or item.get_type() != ITEM_DOCUMENT:
            continue

        soup = BeautifulSoup(item.get_content(), "html.parser")
        lines: List[LineStructure] = []
        for element in soup.find_all(BLOCK_TAGS):
            # Nested blocks are emitted by their innermost element
            if element.find(BLOCK_TAGS):
                continue
            text = element.get_text(" ", strip=True)
            if not text:
                continue
            lines.append(LineStructure(
                id=line_id,
                text=text,
                source_info=item.get_name(),
                original_content=str(element),
            ))
            line_id += 1

        if lines:
            heading = soup.find(['h1', 'h2', 'h3'])
            title = (
                titles.get(item.get_name())
                or titles.get(os.path.basename(item.get_name()))
                or (heading.get_text(strip=True) if heading else None)
                or UNTITLED_CHAPTER_TITLE
            )
            chapters.append(ChapterStructure(
                id=str(uuid.uuid4()),
                title=title,
                source_file=item.get_name(),
                lines=lines,
            ))
        soup.decompose()

    cover_image_path = _extract_cover(book, target_dir) if target_dir is not None else None
    return chapters, cover_image_path


class BookImporter:
    """Turns a TXT or EPUB file into a cached Book and a fresh bookshelf entry."""

    def __init__(self, storage: BookshelfStorage):
        self.storage = storage

    def import_book(self, path: str) -> BookshelfEntry:
        """
        Import a file.

        Args:
            path: TXT or EPUB file

        Returns:
            New entry with every track notStarted

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file type is not supported
        """
        if not os.path.exists(path):
            raise FileNotFoundError(f"Book file not found: {path}")

        file_type = Path(path).suffix.lower().lstrip('.')
        if file_type not in SUPPORTED_FILE_TYPES:
            raise ValueError(f"Unsupported file type: {file_type or path}")

        book_id, cached_path, project_dir = self.storage.create_book_cache(path)
        title = Path(path).stem

        try:
            cover_image_path = None
            if file_type == 'txt':
                chapters = parse_txt(cached_path)
            else:
                chapters, cover_image_path = parse_epub(cached_path, project_dir)

            book = Book(
                id=book_id,
                title=title,
                file_type=file_type,
                original_path=str(path),
                cached_path=cached_path,
                chapters=chapters,
                cover_image_path=cover_image_path,
            )
            sub_cache_path = self.storage.save_book_detail(book)
        except Exception:
            self.storage.remove_book_cache(book_id)
            raise

        logger.info(
            "Imported %r: %d chapters, %d lines",
            title, len(chapters), sum(len(ch.lines) for ch in chapters)
        )
        return BookshelfEntry(
            id=book_id,
            title=title,
            original_path=str(path),
            file_type=file_type,
            sub_cache_path=sub_cache_path,
            cover_image_path=cover_image_path,
        )
