"""Progress, analytics and team endpoints."""
from datetime import datetime, timedelta

from conftest import complete_chapter
from levelup.models import ChatSession, UserProgress
from levelup.services import analytics


class TestProgress:
    def test_mark_complete_and_undo(self, client, user_headers, library):
        chapter_id = library["chapters"]["delegation"]

        rows = client.post(f"/api/progress/{chapter_id}", headers=user_headers).json()
        assert len(rows) == 1
        assert rows[0]["chapterId"] == chapter_id
        assert rows[0]["completed"] is True
        assert rows[0]["completedAt"]

        rows = client.post(f"/api/progress/{chapter_id}", json={"completed": False}, headers=user_headers).json()
        assert len(rows) == 1
        assert rows[0]["completed"] is False
        assert rows[0]["completedAt"] is None

        assert client.get("/api/progress", headers=user_headers).json() == rows

    def test_unknown_chapter(self, client, user_headers):
        assert client.post("/api/progress/999", headers=user_headers).status_code == 404

    def test_progress_reaches_next_chat_turn(self, client, user_headers, library, chat_provider):
        client.post("/api/chat", json={"message": "hi", "sessionId": "s1"}, headers=user_headers)
        assert "- Completion rate: 0%" in chat_provider.calls[-1]["system_prompt"]

        client.post(f"/api/progress/{library['chapters']['delegation']}", headers=user_headers)
        client.post("/api/chat", json={"message": "again", "sessionId": "s1"}, headers=user_headers)

        prompt = chat_provider.calls[-1]["system_prompt"]
        assert "- Completion rate: 25%" in prompt
        assert "Delegation (Leadership) - COMPLETED" in prompt


class TestAnalytics:
    def test_user_overview(self, client, user_headers, library, db):
        complete_chapter(db, "user-1", library["chapters"]["delegation"])
        complete_chapter(db, "user-2", library["chapters"]["giving-feedback"])

        body = client.get("/api/analytics", headers=user_headers).json()

        assert body["overallProgress"] == 25
        assert body["totalUsers"] == 2
        assert body["totalChapters"] == 4
        assert body["completedChapters"] == 2
        leadership = next(c for c in body["categoryProgress"] if c["title"] == "Leadership")
        assert leadership == {
            "categoryId": library["categories"]["leadership"],
            "title": "Leadership",
            "completed": 1,
            "total": 2,
            "percentage": 50,
        }

    def test_content_analytics_is_admin_only(self, client, user_headers, admin_headers):
        assert client.get("/api/analytics/content", headers=user_headers).status_code == 403
        assert client.get("/api/analytics/content", headers=admin_headers).status_code == 200

    def test_content_analytics(self, library, db):
        now = datetime(2024, 6, 10, 12, 0)
        ids = library["chapters"]
        db.add_all([
            UserProgress(user_id="u1", chapter_id=ids["delegation"], completed=True,
                         created_at=now - timedelta(hours=1), completed_at=now - timedelta(minutes=30)),
            UserProgress(user_id="u2", chapter_id=ids["delegation"], completed=True,
                         created_at=now - timedelta(days=20), completed_at=now - timedelta(days=10)),
            UserProgress(user_id="u2", chapter_id=ids["giving-feedback"], completed=False,
                         created_at=now - timedelta(days=1)),
        ])
        db.commit()

        result = analytics.content_analytics(db, now=now)

        top = result["chapterStats"][0]
        assert top["title"] == "Delegation"
        assert top["completions"] == 2
        assert top["completionRate"] == 100
        assert result["trendingChapters"] == [{
            "chapterId": ids["delegation"],
            "title": "Delegation",
            "categoryTitle": "Leadership",
            "recentCompletions": 1,
            "trend": "up",
        }]
        assert result["userEngagement"]["totalUsers"] == 2
        assert result["userEngagement"]["completionRate"] == 66.7
        assert result["summary"]["mostPopularChapter"]["chapterId"] == ids["delegation"]

    def test_content_analytics_empty(self, db):
        result = analytics.content_analytics(db)
        assert result["chapterStats"] == []
        assert result["summary"]["mostPopularChapter"] is None
        assert result["userEngagement"]["avgChaptersPerUser"] == 0


class TestTeam:
    def test_requires_admin(self, client, user_headers):
        assert client.get("/api/team/members", headers=user_headers).status_code == 403

    def test_members_and_stats(self, client, admin_headers, library, db):
        complete_chapter(db, "user-1", library["chapters"]["delegation"])
        db.add(ChatSession(user_id="user-1", session_id="s1", name="Chat", messages=[
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "thanks"},
        ]))
        db.commit()

        members = {m["id"]: m for m in client.get("/api/team/members", headers=admin_headers).json()}
        assert members["admin-1"]["role"] == "admin"
        assert members["user-1"]["progress"] == {"completedChapters": 1, "totalChapters": 4, "percentage": 25}
        assert members["user-1"]["engagement"]["chatMessages"] == 2

        stats = client.get("/api/team/stats", headers=admin_headers).json()
        assert stats["totalMembers"] == 2
        assert stats["activeMembers"] == 1
        assert stats["totalChaptersCompleted"] == 1
