"""Locating projects and conversations inside the Claude Code projects directory.

Layout: ``<projects_dir>/<project_id>/<conversation_id>.jsonl``. Each
immediate subdirectory is a project; each non-hidden ``.jsonl`` file
directly inside it is one conversation.
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from cc_viewer.errors import ConversationNotFoundError
from cc_viewer.models import ConversationInfo, ProjectInfo
from cc_viewer.text import get_conversation_metadata, get_first_user_message

LOGGER = logging.getLogger(__name__)

CONVERSATION_SUFFIX = ".jsonl"


def is_conversation_file(filename: str) -> bool:
    """Check if a file name is a JSONL conversation log."""
    return filename.endswith(CONVERSATION_SUFFIX) and not filename.startswith(".")


def conversation_id_from_filename(filename: str) -> str:
    return filename[: -len(CONVERSATION_SUFFIX)]


def conversation_path(projects_dir: Path, project_id: str, conversation_id: str) -> Path:
    return projects_dir / project_id / f"{conversation_id}{CONVERSATION_SUFFIX}"


def folder_name_to_path(folder_name: str) -> str:
    """Decode a project folder name into the original working directory.

    Path format: ``C--Users-john-projects-myapp`` -> ``C:/Users/john/projects/myapp``
    """
    path = re.sub(r"^([A-Za-z])--", r"\1:/", folder_name)
    return path.replace("--", "/").replace("-", "/")


def get_project_display_name(folder_name: str) -> str:
    """Return the last component of the decoded project path."""
    parts = folder_name_to_path(folder_name).split("/")
    return parts[-1] or folder_name


def format_file_size(size_bytes: int) -> str:
    """Format byte size as human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def list_conversation_ids(project_dir: Path) -> list[str]:
    """List conversation ids in a project directory.

    Raises:
        OSError: The directory cannot be read.
    """
    return sorted(
        conversation_id_from_filename(p.name)
        for p in project_dir.iterdir()
        if is_conversation_file(p.name) and p.is_file()
    )


def list_project_ids(projects_dir: Path) -> list[str]:
    """List project directory names, or nothing if the root does not exist."""
    if not projects_dir.is_dir():
        return []
    return sorted(p.name for p in projects_dir.iterdir() if p.is_dir())


def list_projects(projects_dir: Path) -> list[ProjectInfo]:
    """Describe every readable project, newest first."""
    projects: list[ProjectInfo] = []
    for project_id in list_project_ids(projects_dir):
        project_dir = projects_dir / project_id
        try:
            projects.append(
                ProjectInfo(
                    id=project_id,
                    name=get_project_display_name(project_id),
                    path=folder_name_to_path(project_id),
                    conversation_count=len(list_conversation_ids(project_dir)),
                    last_modified=_mtime(project_dir),
                )
            )
        except OSError as e:
            LOGGER.warning("Skipping unreadable project %s: %s", project_id, e)

    projects.sort(key=lambda p: p.last_modified, reverse=True)
    return projects


def list_conversations(projects_dir: Path, project_id: str) -> list[ConversationInfo]:
    """Describe every conversation of a project, newest first.

    Raises:
        OSError: The project directory cannot be read.
    """
    project_dir = projects_dir / project_id
    conversations: list[ConversationInfo] = []

    for conversation_id in list_conversation_ids(project_dir):
        path = conversation_path(projects_dir, project_id, conversation_id)
        try:
            stat = path.stat()
        except OSError as e:
            LOGGER.warning("Error reading conversation %s: %s", path, e)
            continue

        metadata = get_conversation_metadata(path)
        conversations.append(
            ConversationInfo(
                id=conversation_id,
                project_id=project_id,
                first_message=get_first_user_message(path),
                message_count=metadata.message_count,
                timestamp=metadata.first_timestamp,
                last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                size=format_file_size(stat.st_size),
                size_bytes=stat.st_size,
                model=metadata.model,
            )
        )

    conversations.sort(key=lambda c: c.last_modified, reverse=True)
    return conversations


def read_conversation(projects_dir: Path, project_id: str, conversation_id: str) -> str:
    """Return the raw JSONL text of a conversation.

    Raises:
        ConversationNotFoundError: The file vanished or cannot be read.
    """
    path = conversation_path(projects_dir, project_id, conversation_id)
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ConversationNotFoundError(project_id, conversation_id) from e
