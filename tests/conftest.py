"""
Shared pytest fixtures and configuration for Novel Studio tests
"""
import sys
import tempfile
import threading
from pathlib import Path

import pytest
from ebooklib import epub

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from novel_studio.book import Book, ChapterStructure, LineStructure
from novel_studio.config import TaskConfig
from novel_studio.tasks import (
    BookshelfEntry,
    BookshelfStorage,
    ChunkStatus,
    ExecutionGateway,
    TaskLogStorage,
    TaskManager,
)


def build_book(book_id, chapters, title="Test Novel"):
    """Build a Book from [(chapter_title, [line_text, ...]), ...].

    Line ids count up across the whole book, chapter ids are "ch<N>".
    """
    line_id = 0
    built = []
    for index, (chapter_title, texts) in enumerate(chapters):
        lines = []
        for text in texts:
            lines.append(LineStructure(id=line_id, text=text))
            line_id += 1
        built.append(ChapterStructure(id=f"ch{index}", title=chapter_title, lines=lines))

    return Book(
        id=book_id,
        title=title,
        file_type="txt",
        original_path=f"/books/{book_id}.txt",
        cached_path=f"/cache/{book_id}/content.txt",
        chapters=built,
    )


class ScriptedGateway(ExecutionGateway):
    """Gateway driven from the test.

    Completes the first `complete` chunks (all if None), then raises
    RuntimeError(error) if given. With block=True it waits for `release`
    before touching any chunk.
    """

    def __init__(self, complete=None, error=None, block=False):
        self.complete = complete
        self.error = error
        self.block = block
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = []
        self.tokens = []

    def generate(self, book, cancellation_token, on_progress, is_paused, chunks):
        self.calls.append(book.id)
        self.tokens.append(cancellation_token)
        self.started.set()
        if self.block:
            self.release.wait(5)

        count = len(chunks) if self.complete is None else self.complete
        for index, chunk in enumerate(chunks[:count]):
            if cancellation_token.is_canceled or is_paused():
                return
            chunk.status = ChunkStatus.COMPLETED
            on_progress((index + 1) / len(chunks), chunk)

        if self.error:
            raise RuntimeError(self.error)


@pytest.fixture
def temp_dir():
    """Temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def task_config(temp_dir):
    """Config rooted in the temp dir, with small chunk budgets"""
    return TaskConfig(
        cache_dir=str(temp_dir / "cache"),
        illustration_chunk_tokens=1000,
        translation_chunk_tokens=800,
        min_chapter_chars=100,
    )


@pytest.fixture
def storage(task_config):
    return BookshelfStorage(task_config.cache_dir)


@pytest.fixture
def log_storage(task_config):
    log_storage = TaskLogStorage(task_config.log_db_path)
    yield log_storage
    log_storage.close()


@pytest.fixture
def long_book():
    """Two long chapters and one short one"""
    return build_book("book-1", [
        ("Chapter 1", ["a" * 300] * 8),
        ("Chapter 2", ["b" * 250] * 4),
        ("Interlude", ["too short"]),
    ])


@pytest.fixture
def add_book(storage):
    """Save a book detail and return a fresh entry for it"""
    def _add_book(book_id="book-1", chapters=None):
        chapters = chapters or [("Chapter 1", ["x" * 200] * 3)]
        book = build_book(book_id, chapters, title=f"Novel {book_id}")
        sub_cache_path = storage.save_book_detail(book)
        return BookshelfEntry(
            id=book_id,
            title=book.title,
            original_path=book.original_path,
            file_type="txt",
            sub_cache_path=sub_cache_path,
        )
    return _add_book


@pytest.fixture
def make_manager(task_config, storage, log_storage):
    """Factory for managers sharing one cache; waits for workers on teardown"""
    managers = []

    def _make_manager(gateways=None, storage_override=None):
        manager = TaskManager(
            config=task_config,
            storage=storage_override or storage,
            gateways=gateways,
            log_storage=log_storage,
        )
        managers.append(manager)
        return manager

    yield _make_manager

    for manager in managers:
        for gateway in manager.gateways.values():
            if isinstance(gateway, ScriptedGateway):
                gateway.release.set()
        manager.wait_until_idle(10)


@pytest.fixture
def simple_epub(temp_dir):
    """Create a simple two-chapter EPUB file for testing"""
    book = epub.EpubBook()

    # Metadata
    book.set_identifier('test-simple-001')
    book.set_title('Simple Test Book')
    book.set_language('en')
    book.add_author('Test Author')

    c1 = epub.EpubHtml(title='Chapter 1', file_name='chapter1.xhtml', lang='en')
    c1.content = (
        '<html><body><h1>The Beginning</h1>'
        '<p>It was a dark night.</p><p>The rain kept falling.</p>'
        '</body></html>'
    )
    c2 = epub.EpubHtml(title='Chapter 2', file_name='chapter2.xhtml', lang='en')
    c2.content = (
        '<html><body><h2>Morning</h2>'
        '<p>The sun rose.</p><ul><li>Bread</li><li>Tea</li></ul>'
        '</body></html>'
    )

    book.add_item(c1)
    book.add_item(c2)
    book.toc = (
        epub.Link('chapter1.xhtml', 'Chapter 1', 'ch1'),
        epub.Link('chapter2.xhtml', 'Chapter 2', 'ch2'),
    )
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = [c1, c2]

    epub_path = temp_dir / 'simple_test.epub'
    epub.write_epub(str(epub_path), book)

    return epub_path


@pytest.fixture
def epub_with_cover(temp_dir):
    """Create an EPUB with a cover image and a chapter missing from the TOC"""
    book = epub.EpubBook()

    book.set_identifier('test-cover-001')
    book.set_title('Book With Cover')
    book.set_language('en')
    book.set_cover('cover.jpg', b'\xff\xd8\xff\xe0\x00\x10JFIF', create_page=False)

    c1 = epub.EpubHtml(title='Chapter 1', file_name='chapter1.xhtml', lang='en')
    c1.content = '<html><body><h1>Arrival</h1><p>Content here.</p></body></html>'
    c2 = epub.EpubHtml(title='Untitled', file_name='extra.xhtml', lang='en')
    c2.content = '<html><body><h3>Extra Scene</h3><p>More content.</p></body></html>'

    book.add_item(c1)
    book.add_item(c2)
    book.toc = (epub.Link('chapter1.xhtml', 'Chapter 1', 'ch1'),)
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = [c1, c2]

    epub_path = temp_dir / 'cover_test.epub'
    epub.write_epub(str(epub_path), book)

    return epub_path
