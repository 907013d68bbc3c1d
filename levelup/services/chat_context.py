"""System prompt assembly for the chat coach.

The prompt is rebuilt from fresh reads on every chat turn so that progress
recorded between turns shows up in the very next reply.
"""
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from levelup.models import Category, Chapter, UserProgress

COACH_PREAMBLE = """You are the AI management coach for Level Up, a management development platform.
You help managers apply Level Up concepts to real workplace situations.
Be practical and supportive. Keep responses conversational and actionable.
When a chapter is relevant, reference it by title and point the user to its link.
Use the user's learning progress to suggest what to read next."""

TRUNCATION_MARKER = "..."
NO_COMPLETED = "None yet"
ALL_COMPLETED = "All chapters completed!"
UNCATEGORIZED = "Uncategorized"
MAX_RECOMMENDATIONS = 3


@dataclass
class LearningProgress:
    completion_rate: int
    completed_titles: List[str] = field(default_factory=list)
    recommended_titles: List[str] = field(default_factory=list)


def completion_rate(completed: int, total: int) -> int:
    """Percentage rounded half-up; 0 for an empty library."""
    if total <= 0:
        return 0
    return int(math.floor(100 * completed / total + 0.5))


def completed_chapter_ids(progress: Iterable[UserProgress]) -> set:
    return {p.chapter_id for p in progress if p.completed}


def summarize_progress(chapters: Sequence[Chapter], progress: Iterable[UserProgress]) -> LearningProgress:
    done = completed_chapter_ids(progress)
    completed = [c for c in chapters if c.id in done]
    remaining = [c for c in chapters if c.id not in done]
    return LearningProgress(
        completion_rate=completion_rate(len(completed), len(chapters)),
        completed_titles=[c.title for c in completed],
        recommended_titles=[c.title for c in remaining[:MAX_RECOMMENDATIONS]],
    )


def excerpt(content: Optional[str], limit: int) -> str:
    return (content or "")[:limit] + TRUNCATION_MARKER


class ChatContextBuilder:
    """Builds the system prompt for one chat turn."""

    def __init__(self, preamble: str = COACH_PREAMBLE, excerpt_chars: int = 800, chapter_path: str = "/chapter/"):
        self.preamble = preamble
        self.excerpt_chars = excerpt_chars
        self.chapter_path = chapter_path

    def build(
        self,
        chapters: Sequence[Chapter],
        categories: Iterable[Category],
        progress: Iterable[UserProgress],
    ) -> str:
        progress = list(progress)
        category_titles: Dict[int, str] = {c.id: c.title for c in categories}
        summary = summarize_progress(chapters, progress)
        done = completed_chapter_ids(progress)

        sections = [
            self.preamble,
            self._progress_section(summary),
            "AVAILABLE CONTENT:\n\n" + "\n\n".join(
                self._chapter_block(c, category_titles, c.id in done) for c in chapters
            ),
            "CHAPTER LINKS:\n" + "\n".join(
                f"- {c.title}: {self.chapter_path}{c.slug}" for c in chapters
            ),
        ]
        return "\n\n".join(sections)

    def _progress_section(self, summary: LearningProgress) -> str:
        return "\n".join([
            "USER'S LEARNING PROGRESS:",
            f"- Completion rate: {summary.completion_rate}%",
            f"- Completed chapters: {', '.join(summary.completed_titles) or NO_COMPLETED}",
            f"- Recommended next: {', '.join(summary.recommended_titles) or ALL_COMPLETED}",
        ])

    def _chapter_block(self, chapter: Chapter, category_titles: Dict[int, str], completed: bool) -> str:
        category = category_titles.get(chapter.category_id, UNCATEGORIZED)
        state = "COMPLETED" if completed else "NOT_STARTED"
        return f"{chapter.title} ({category}) - {state}:\n{excerpt(chapter.content, self.excerpt_chars)}"
