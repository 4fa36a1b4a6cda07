"""
Data models for the background task system.

One BookshelfEntry exists per imported book. It carries three independent
task tracks (illustration, translation, video generation), each with its own
status, chunk list, error text and timestamps. All models serialize to the
camelCase layout of bookshelf.json.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List, Iterator, Tuple, Union


class TaskStatus(str, Enum):
    """Status of one task track."""
    NOT_STARTED = "notStarted"  # No generation attempt exists
    QUEUED = "queued"           # Waiting for the worker slot
    RUNNING = "running"         # Currently being processed
    PAUSED = "paused"           # Stopped by the user or by startup recovery
    COMPLETED = "completed"     # Gateway returned normally
    FAILED = "failed"           # Gateway raised
    CANCELED = "canceled"       # Canceled by the user


class ChunkStatus(str, Enum):
    """Status of a single chunk inside a track."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TrackType(str, Enum):
    """
    The three generation workflows of a book.

    Declaration order is scheduling priority order.
    """
    ILLUSTRATION = "illustration"
    TRANSLATION = "translation"
    VIDEO_GENERATION = "videoGeneration"


def _new_chunk_id() -> str:
    return str(uuid.uuid4())


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class IllustrationTaskChunk:
    """A chapter line range for which scenes should be illustrated."""
    chapter_id: str
    start_line_id: int
    end_line_id: int
    scenes_to_generate: int
    id: str = field(default_factory=_new_chunk_id)
    status: ChunkStatus = ChunkStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'chapterId': self.chapter_id,
            'startLineId': self.start_line_id,
            'endLineId': self.end_line_id,
            'scenesToGenerate': self.scenes_to_generate,
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IllustrationTaskChunk':
        return cls(
            id=data['id'],
            chapter_id=data['chapterId'],
            start_line_id=int(data['startLineId']),
            end_line_id=int(data['endLineId']),
            scenes_to_generate=int(data['scenesToGenerate']),
            status=ChunkStatus(data.get('status', ChunkStatus.PENDING.value)),
        )


@dataclass
class TranslationTaskChunk:
    """A chapter line range to translate."""
    chapter_id: str
    start_line_id: int
    end_line_id: int
    id: str = field(default_factory=_new_chunk_id)
    status: ChunkStatus = ChunkStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'chapterId': self.chapter_id,
            'startLineId': self.start_line_id,
            'endLineId': self.end_line_id,
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TranslationTaskChunk':
        return cls(
            id=data['id'],
            chapter_id=data['chapterId'],
            start_line_id=int(data['startLineId']),
            end_line_id=int(data['endLineId']),
            status=ChunkStatus(data.get('status', ChunkStatus.PENDING.value)),
        )


@dataclass
class VideoGenerationTaskChunk:
    """A single illustration to animate."""
    chapter_id: str
    line_id: int
    source_image_path: str
    id: str = field(default_factory=_new_chunk_id)
    status: ChunkStatus = ChunkStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'chapterId': self.chapter_id,
            'lineId': self.line_id,
            'sourceImagePath': self.source_image_path,
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VideoGenerationTaskChunk':
        return cls(
            id=data['id'],
            chapter_id=data['chapterId'],
            line_id=int(data['lineId']),
            source_image_path=data['sourceImagePath'],
            status=ChunkStatus(data.get('status', ChunkStatus.PENDING.value)),
        )


TaskChunk = Union[IllustrationTaskChunk, TranslationTaskChunk, VideoGenerationTaskChunk]

CHUNK_TYPES = {
    TrackType.ILLUSTRATION: IllustrationTaskChunk,
    TrackType.TRANSLATION: TranslationTaskChunk,
    TrackType.VIDEO_GENERATION: VideoGenerationTaskChunk,
}

# bookshelf.json key for each track field, per track type
_TRACK_KEYS = {
    TrackType.ILLUSTRATION: {
        'status': 'status',
        'chunks': 'taskChunks',
        'error_message': 'errorMessage',
        'created_at': 'createdAt',
        'updated_at': 'updatedAt',
    },
    TrackType.TRANSLATION: {
        'status': 'translationStatus',
        'chunks': 'translationTaskChunks',
        'error_message': 'translationErrorMessage',
        'created_at': 'translationCreatedAt',
        'updated_at': 'translationUpdatedAt',
    },
    TrackType.VIDEO_GENERATION: {
        'status': 'videoGenerationStatus',
        'chunks': 'videoGenerationTaskChunks',
        'error_message': 'videoGenerationErrorMessage',
        'created_at': 'videoGenerationCreatedAt',
        'updated_at': 'videoGenerationUpdatedAt',
    },
}


@dataclass
class TaskTrack:
    """
    State of one generation workflow for a book.

    Chunks are only non-empty once a generation attempt has been enqueued;
    clearing or deleting the track empties them again.
    """
    status: TaskStatus = TaskStatus.NOT_STARTED
    chunks: List[TaskChunk] = field(default_factory=list)
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def completed_chunk_count(self) -> int:
        return sum(1 for chunk in self.chunks if chunk.status == ChunkStatus.COMPLETED)

    @property
    def progress(self) -> float:
        """Completed chunk ratio in [0.0, 1.0]."""
        if not self.chunks:
            return 1.0 if self.status == TaskStatus.COMPLETED else 0.0
        return self.completed_chunk_count / len(self.chunks)

    def find_chunk(self, chunk_id: str) -> Optional[TaskChunk]:
        for chunk in self.chunks:
            if chunk.id == chunk_id:
                return chunk
        return None

    def touch(self):
        self.updated_at = datetime.now()

    def reset(self):
        """Return the track to notStarted with no chunks and no error."""
        self.status = TaskStatus.NOT_STARTED
        self.chunks = []
        self.error_message = None
        self.touch()

    def to_dict(self, track_type: TrackType) -> Dict[str, Any]:
        keys = _TRACK_KEYS[track_type]
        return {
            keys['status']: self.status.value,
            keys['chunks']: [chunk.to_dict() for chunk in self.chunks],
            keys['error_message']: self.error_message,
            keys['created_at']: _format_timestamp(self.created_at),
            keys['updated_at']: _format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], track_type: TrackType) -> 'TaskTrack':
        """Read one track; absent keys mean the track was never started."""
        keys = _TRACK_KEYS[track_type]
        chunk_cls = CHUNK_TYPES[track_type]
        return cls(
            status=TaskStatus(data.get(keys['status']) or TaskStatus.NOT_STARTED.value),
            chunks=[chunk_cls.from_dict(chunk) for chunk in data.get(keys['chunks']) or []],
            error_message=data.get(keys['error_message']),
            created_at=_parse_timestamp(data.get(keys['created_at'])),
            updated_at=_parse_timestamp(data.get(keys['updated_at'])),
        )


@dataclass
class BookshelfEntry:
    """
    The task record of one book.

    The id is the book's own id. An entry is created when the book is
    imported and only destroyed when the book leaves the library; its tracks
    cycle through their state machine independently.
    """
    id: str
    title: str
    original_path: str = ""
    file_type: str = ""
    sub_cache_path: str = ""
    cover_image_path: Optional[str] = None

    illustration: TaskTrack = field(default_factory=TaskTrack)
    translation: TaskTrack = field(default_factory=TaskTrack)
    video_generation: TaskTrack = field(default_factory=TaskTrack)

    def track(self, track_type: TrackType) -> TaskTrack:
        if track_type == TrackType.ILLUSTRATION:
            return self.illustration
        elif track_type == TrackType.TRANSLATION:
            return self.translation
        elif track_type == TrackType.VIDEO_GENERATION:
            return self.video_generation
        raise ValueError(f"Unknown track type: {track_type}")

    def tracks(self) -> Iterator[Tuple[TrackType, TaskTrack]]:
        """Yield (track_type, track) in scheduling priority order."""
        for track_type in TrackType:
            yield track_type, self.track(track_type)

    def has_status(self, *statuses: TaskStatus) -> bool:
        return any(track.status in statuses for _, track in self.tracks())

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'title': self.title,
            'originalPath': self.original_path,
            'fileType': self.file_type,
            'subCachePath': self.sub_cache_path,
            'coverImagePath': self.cover_image_path,
        }
        for track_type, track in self.tracks():
            data.update(track.to_dict(track_type))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BookshelfEntry':
        return cls(
            id=data['id'],
            title=data.get('title', ""),
            original_path=data.get('originalPath', ""),
            file_type=data.get('fileType', ""),
            sub_cache_path=data.get('subCachePath', ""),
            cover_image_path=data.get('coverImagePath'),
            illustration=TaskTrack.from_dict(data, TrackType.ILLUSTRATION),
            translation=TaskTrack.from_dict(data, TrackType.TRANSLATION),
            video_generation=TaskTrack.from_dict(data, TrackType.VIDEO_GENERATION),
        )

    def format_status_message(self, track_type: TrackType) -> str:
        """Format a user-friendly status line for one track."""
        track = self.track(track_type)
        if track.status == TaskStatus.NOT_STARTED:
            return "Not started"
        elif track.status == TaskStatus.QUEUED:
            return "Waiting in queue..."
        elif track.status == TaskStatus.RUNNING:
            return f"Processing... ({track.progress * 100:.1f}%)"
        elif track.status == TaskStatus.PAUSED:
            return f"Paused ({track.progress * 100:.1f}%)"
        elif track.status == TaskStatus.COMPLETED:
            return "Completed successfully"
        elif track.status == TaskStatus.FAILED:
            if track.error_message:
                return f"Failed: {track.error_message}"
            return "Failed"
        elif track.status == TaskStatus.CANCELED:
            return "Canceled by user"
        return str(track.status.value)


# Type aliases for clarity
EntryID = str
