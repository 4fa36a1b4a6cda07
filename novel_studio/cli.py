#!/usr/bin/env python3
"""Command line front end for the bookshelf task system."""

import difflib
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime

from .config import TaskConfig
from .importer import BookImporter
from .tasks import TaskManager, TaskStatus, TrackType

COMMANDS = [
    'list', 'show', 'import', 'queue', 'pause', 'resume', 'resume-all',
    'cancel', 'retry', 'delete', 'remove', 'clear-completed', 'logs',
]

# Commands and the number of positional arguments they take
COMMAND_ARGS = {
    'list': 0,
    'show': 1,
    'import': 1,
    'queue': 2,
    'pause': 2,
    'resume': 2,
    'resume-all': 0,
    'cancel': 1,
    'retry': 1,
    'delete': 1,
    'remove': 1,
    'clear-completed': 0,
    'logs': 1,
}

TRACK_NAMES = {
    'illustration': TrackType.ILLUSTRATION,
    'translation': TrackType.TRANSLATION,
    'video': TrackType.VIDEO_GENERATION,
    'videoGeneration': TrackType.VIDEO_GENERATION,
}

STATUS_MARKERS = {
    TaskStatus.NOT_STARTED: '-',
    TaskStatus.QUEUED: '…',
    TaskStatus.RUNNING: '>',
    TaskStatus.PAUSED: '=',
    TaskStatus.COMPLETED: '✓',
    TaskStatus.FAILED: '!',
    TaskStatus.CANCELED: 'x',
}


def print_usage():
    print("""
Usage: novel-studio <command> [arguments] [options]

Commands:
    list                     List bookshelf entries and their task status
    show <id>                Show the tracks of one entry in detail
    import <file>            Import a .txt or .epub book
    queue <id> <track>       Plan and queue a track (picked up by the app)
    pause <id> <track>       Pause a running track
    resume <id> <track>      Queue a paused track again
    resume-all               Queue every paused track
    cancel <id>              Cancel the queued and running work of an entry
    retry <id>               Queue failed and canceled tracks again
    delete <id>              Reset all tracks of an entry
    remove <id>              Remove a book from the library
    clear-completed          Reset every completed track
    logs <id>                Show the task log of an entry

Tracks:
    illustration, translation, video

Options:
    -h, --help               Show this help message
    --cache-dir <dir>        Book cache directory (default: ~/.novel-studio/BookProjectsCache)
    --limit <n>              Number of log lines for 'logs' (default: 50)
    --debug                  Show debug logging

Examples:
    novel-studio import my_novel.txt
    novel-studio queue 1f0c... illustration
    novel-studio pause 1f0c... illustration
    novel-studio logs 1f0c... --limit 20
    """)


def parse_track(name):
    track_type = TRACK_NAMES.get(name)
    if track_type is None:
        print(f"Error: Unknown track '{name}'. Use one of: illustration, translation, video")
        sys.exit(1)
    return track_type


def print_entries(manager):
    entries = manager.entries
    if not entries:
        print("Bookshelf is empty.")
        return

    for entry in entries:
        markers = ' '.join(
            f"{STATUS_MARKERS[track.status]}{track_type.value[:5]}"
            for track_type, track in entry.tracks()
        )
        print(f"{entry.id}  {markers}  {entry.title}")


def print_entry(manager, entry_id):
    entry = manager.get_entry(entry_id)
    if entry is None:
        print(f"Error: No bookshelf entry with id {entry_id}")
        sys.exit(1)

    print(f"{entry.title} ({entry.file_type})")
    print(f"  id:       {entry.id}")
    print(f"  source:   {entry.original_path}")
    for track_type, track in entry.tracks():
        print(f"  {track_type.value:<16} {entry.format_status_message(track_type)}")
        if track.chunks:
            print(f"  {'':<16} {track.completed_chunk_count}/{len(track.chunks)} chunks done")


def print_logs(manager, entry_id, limit):
    logs = manager.get_task_logs(entry_id, limit=limit)
    if not logs:
        print("No log entries.")
        return
    for log in reversed(logs):
        track = f"[{log['track']}] " if log['track'] else ""
        print(f"{datetime.fromtimestamp(log['timestamp']):%Y-%m-%d %H:%M:%S}  {log['level']:<8} {track}{log['message']}")


def main(argv=None):
    """Main entry point for the novel-studio CLI tool."""
    argv = list(sys.argv[1:] if argv is None else argv)

    if not argv or '--help' in argv or '-h' in argv:
        print_usage()
        sys.exit(0)

    # Pull options out, leaving the command and its positionals
    cache_dir = None
    limit = 50
    debug = False
    positionals = []
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg == '--cache-dir' and i + 1 < len(argv):
            cache_dir = argv[i + 1]
            i += 1
        elif arg == '--limit' and i + 1 < len(argv):
            try:
                limit = int(argv[i + 1])
            except ValueError:
                print("Error: Limit must be a whole number")
                sys.exit(1)
            i += 1
        elif arg == '--debug':
            debug = True
        elif arg.startswith('--'):
            print(f"Error: Unknown option: {arg}")
            print_usage()
            sys.exit(1)
        else:
            positionals.append(arg)
        i += 1

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    if not positionals:
        print_usage()
        sys.exit(1)

    command, args = positionals[0], positionals[1:]
    if command not in COMMAND_ARGS:
        print(f"Error: Unknown command: {command}")
        similar = difflib.get_close_matches(command, COMMANDS, n=3, cutoff=0.4)
        if similar:
            print(f"  Did you mean: {', '.join(similar)}")
        print_usage()
        sys.exit(1)

    if len(args) != COMMAND_ARGS[command]:
        print(f"Error: '{command}' takes {COMMAND_ARGS[command]} argument(s), got {len(args)}")
        sys.exit(1)

    config = TaskConfig.from_env()
    if cache_dir:
        config = replace(config, cache_dir=cache_dir, log_db_path=os.getenv('NOVEL_STUDIO_LOG_DB') or None)

    manager = TaskManager(config=config)
    try:
        # reload, not init: the host application may own running tracks
        manager.reload()
        run_command(manager, command, args, limit)
    finally:
        manager.close()


def run_command(manager, command, args, limit=50):
    if command == 'list':
        print_entries(manager)
    elif command == 'show':
        print_entry(manager, args[0])
    elif command == 'import':
        importer = BookImporter(manager.storage)
        try:
            entry = importer.import_book(args[0])
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}")
            sys.exit(1)
        manager.add_entry(entry)
        print(f"Imported '{entry.title}' as {entry.id}")
    elif command == 'queue':
        track_type = parse_track(args[1])
        enqueue = {
            TrackType.ILLUSTRATION: manager.enqueue_illustrations,
            TrackType.TRANSLATION: manager.enqueue_translations,
            TrackType.VIDEO_GENERATION: manager.enqueue_video_generation,
        }[track_type]
        try:
            enqueue(args[0])
        except (KeyError, ValueError) as e:
            print(f"Error: {e}")
            sys.exit(1)
        print(f"Queued {track_type.value} for {args[0]}")
    elif command == 'pause':
        manager.pause_task(args[0], parse_track(args[1]))
    elif command == 'resume':
        manager.resume_task(args[0], parse_track(args[1]))
    elif command == 'resume-all':
        manager.resume_all_tasks()
    elif command == 'cancel':
        manager.cancel_task(args[0])
    elif command == 'retry':
        manager.retry_task(args[0])
    elif command == 'delete':
        manager.delete_task(args[0])
    elif command == 'remove':
        manager.remove_entry(args[0])
    elif command == 'clear-completed':
        manager.clear_completed_tasks()
    elif command == 'logs':
        print_logs(manager, args[0], limit)


if __name__ == "__main__":
    main()
