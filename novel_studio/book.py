"""
Parsed book detail models.

A Book is the full, parsed form of an imported file: chapters made of
numbered lines. It is cached per book as JSON next to the bookshelf and
loaded by the scheduler before a track is handed to its execution gateway.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Iterator, Tuple


@dataclass
class LineStructure:
    """One line of text together with the artifacts generated for it."""
    id: int
    text: str
    source_info: str = ""
    original_content: str = ""
    illustration_paths: List[str] = field(default_factory=list)
    video_paths: List[str] = field(default_factory=list)
    scene_description: Optional[str] = None
    translated_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'text': self.text,
            'sourceInfo': self.source_info,
            'originalContent': self.original_content,
            'illustrationPaths': list(self.illustration_paths),
            'videoPaths': list(self.video_paths),
            'sceneDescription': self.scene_description,
            'translatedText': self.translated_text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LineStructure':
        return cls(
            id=int(data['id']),
            text=data['text'],
            source_info=data.get('sourceInfo') or "",
            original_content=data.get('originalContent') or "",
            illustration_paths=list(data.get('illustrationPaths') or []),
            video_paths=list(data.get('videoPaths') or []),
            scene_description=data.get('sceneDescription'),
            translated_text=data.get('translatedText'),
        )


@dataclass
class ChapterStructure:
    """A chapter: a title and its lines in reading order."""
    id: str
    title: str
    source_file: str = ""
    lines: List[LineStructure] = field(default_factory=list)

    @property
    def char_count(self) -> int:
        return sum(len(line.text) for line in self.lines)

    def lines_between(self, start_line_id: int, end_line_id: int) -> List[LineStructure]:
        """Lines whose ids fall in the inclusive range."""
        return [line for line in self.lines if start_line_id <= line.id <= end_line_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'sourceFile': self.source_file,
            'lines': [line.to_dict() for line in self.lines],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChapterStructure':
        return cls(
            id=data['id'],
            title=data['title'],
            source_file=data.get('sourceFile') or "",
            lines=[LineStructure.from_dict(line) for line in data.get('lines', [])],
        )


@dataclass
class Book:
    """
    A fully parsed book.

    The id is shared with the book's bookshelf entry.
    """
    id: str
    title: str
    file_type: str
    original_path: str
    cached_path: str
    chapters: List[ChapterStructure] = field(default_factory=list)
    cover_image_path: Optional[str] = None

    def get_chapter(self, chapter_id: str) -> Optional[ChapterStructure]:
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None

    def iter_illustrations(self) -> Iterator[Tuple[ChapterStructure, LineStructure, str]]:
        """Yield (chapter, line, image_path) for every generated illustration."""
        for chapter in self.chapters:
            for line in chapter.lines:
                for image_path in line.illustration_paths:
                    yield chapter, line, image_path

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'fileType': self.file_type,
            'originalPath': self.original_path,
            'cachedPath': self.cached_path,
            'coverImagePath': self.cover_image_path,
            'chapters': [chapter.to_dict() for chapter in self.chapters],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Book':
        return cls(
            id=data['id'],
            title=data['title'],
            file_type=data['fileType'],
            original_path=data['originalPath'],
            cached_path=data['cachedPath'],
            cover_image_path=data.get('coverImagePath'),
            chapters=[ChapterStructure.from_dict(ch) for ch in data.get('chapters', [])],
        )
