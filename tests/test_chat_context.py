"""Tests for system prompt assembly."""
from levelup.models import Category, Chapter, UserProgress
from levelup.services.chat_context import (
    ALL_COMPLETED,
    NO_COMPLETED,
    ChatContextBuilder,
    completion_rate,
    excerpt,
    summarize_progress,
)


def _chapter(id, title, category_id=1, content="Body", slug=None):
    return Chapter(id=id, title=title, slug=slug or title.lower().replace(" ", "-"),
                   category_id=category_id, content=content)


class TestCompletionRate:
    def test_empty_library_is_zero(self):
        assert completion_rate(0, 0) == 0

    def test_rounds_half_up(self):
        # 1/8 = 12.5%, banker's rounding would give 12
        assert completion_rate(1, 8) == 13
        assert completion_rate(1, 3) == 33
        assert completion_rate(2, 3) == 67

    def test_full_completion(self):
        assert completion_rate(4, 4) == 100


class TestExcerpt:
    def test_empty_content_is_just_marker(self):
        assert excerpt(None, 800) == "..."
        assert excerpt("", 800) == "..."

    def test_long_content_truncated(self):
        assert excerpt("a" * 1000, 800) == "a" * 800 + "..."

    def test_short_content_keeps_marker(self):
        assert excerpt("short", 800) == "short..."


class TestSummarizeProgress:
    def test_recommends_first_three_unfinished_in_order(self):
        chapters = [_chapter(i, f"Chapter {i}") for i in range(1, 6)]
        progress = [UserProgress(chapter_id=2, completed=True), UserProgress(chapter_id=3, completed=False)]

        summary = summarize_progress(chapters, progress)

        assert summary.completion_rate == 20
        assert summary.completed_titles == ["Chapter 2"]
        assert summary.recommended_titles == ["Chapter 1", "Chapter 3", "Chapter 4"]

    def test_everything_completed(self):
        chapters = [_chapter(1, "Only")]
        summary = summarize_progress(chapters, [UserProgress(chapter_id=1, completed=True)])
        assert summary.completion_rate == 100
        assert summary.recommended_titles == []


class TestChatContextBuilder:
    def test_prompt_sections(self):
        builder = ChatContextBuilder(preamble="You are a coach.", excerpt_chars=5)
        chapters = [
            _chapter(1, "Delegation", content="Hand off outcomes"),
            _chapter(2, "Feedback", category_id=99, content=None),
        ]
        categories = [Category(id=1, title="Leadership")]
        progress = [UserProgress(chapter_id=1, completed=True)]

        prompt = builder.build(chapters, categories, progress)

        assert prompt.startswith("You are a coach.\n\nUSER'S LEARNING PROGRESS:\n")
        assert "- Completion rate: 50%" in prompt
        assert "- Completed chapters: Delegation" in prompt
        assert "- Recommended next: Feedback" in prompt
        assert "Delegation (Leadership) - COMPLETED:\nHand ..." in prompt
        assert "Feedback (Uncategorized) - NOT_STARTED:\n..." in prompt
        assert prompt.endswith("CHAPTER LINKS:\n- Delegation: /chapter/delegation\n- Feedback: /chapter/feedback")

    def test_new_user_placeholders(self):
        prompt = ChatContextBuilder().build([_chapter(1, "Delegation")], [], [])
        assert f"- Completed chapters: {NO_COMPLETED}" in prompt
        assert "- Completion rate: 0%" in prompt

    def test_all_completed_placeholder(self):
        prompt = ChatContextBuilder().build(
            [_chapter(1, "Delegation")], [], [UserProgress(chapter_id=1, completed=True)]
        )
        assert f"- Recommended next: {ALL_COMPLETED}" in prompt

    def test_empty_library(self):
        prompt = ChatContextBuilder().build([], [], [])
        assert "- Completion rate: 0%" in prompt
        assert "AVAILABLE CONTENT:" in prompt
