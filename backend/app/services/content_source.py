"""
Content acquisition.

Download and transcription tooling lives outside this service; a
ContentSource turns a job's source reference into text (and optionally a
local video) for the analysis pipeline.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from analysis.errors import JobFatalError

logger = logging.getLogger(__name__)


@dataclass
class AcquiredContent:
    text: str
    video_path: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    analysis_source: str = 'transcript'


class ContentSource:
    """Base class for content sources."""

    def acquire(
        self,
        source_ref: str,
        video_path: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AcquiredContent:
        raise NotImplementedError


def metadata_text(metadata: Optional[Dict[str, Any]]) -> str:
    """Title/description fallback text used when there is no transcript."""
    if not metadata:
        return ''
    title = (metadata.get('title') or '').strip()
    description = (metadata.get('description') or '').strip()
    if not title and not description:
        return ''
    return f"Title: {title}\n\nDescription: {description}"


class InlineContentSource(ContentSource):
    """
    Treats the source reference itself as the transcript text.

    Falls back to title/description metadata when the reference is empty, and
    attaches the video path only when the file exists.
    """

    def acquire(self, source_ref, video_path=None, metadata=None) -> AcquiredContent:
        metadata = dict(metadata or {})
        text = (source_ref or '').strip()
        analysis_source = 'transcript'

        if not text:
            text = metadata_text(metadata)
            analysis_source = 'metadata'
            if text:
                logger.warning("No transcript available, analyzing title and description only")

        if not text:
            raise JobFatalError('No content available for analysis')

        usable_video = None
        if video_path:
            if Path(video_path).is_file():
                usable_video = video_path
                analysis_source = f"video+{analysis_source}"
            else:
                logger.warning(f"Video file not found, continuing without it: {video_path}")

        return AcquiredContent(
            text=text,
            video_path=usable_video,
            metadata=metadata,
            analysis_source=analysis_source,
        )
