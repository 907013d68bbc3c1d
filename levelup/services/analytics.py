"""Learning analytics for the dashboard, the CMS and the team view.

Aggregation happens in Python over joined rows so the same code runs on
Postgres and SQLite.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from levelup.models import Category, Chapter, ChatSession, User, UserProgress
from levelup.services.chat_context import completion_rate

TRENDING_DAYS = 7
TRENDING_LIMIT = 10


def _pct(part: int, whole: int) -> float:
    return round(part * 100.0 / whole, 1) if whole else 0


def _iso(value):
    return value.isoformat() if value else None


def user_overview(db: Session, user_id: str) -> Dict[str, Any]:
    chapters = db.query(Chapter).all()
    categories = db.query(Category).order_by(Category.sort_order).all()
    done = {
        p.chapter_id
        for p in db.query(UserProgress).filter(UserProgress.user_id == user_id, UserProgress.completed.is_(True))
    }

    category_progress = []
    for category in categories:
        ids = [c.id for c in chapters if c.category_id == category.id]
        completed = len(done.intersection(ids))
        category_progress.append({
            "categoryId": category.id,
            "title": category.title,
            "completed": completed,
            "total": len(ids),
            "percentage": completion_rate(completed, len(ids)),
        })

    return {
        "overallProgress": completion_rate(len(done.intersection(c.id for c in chapters)), len(chapters)),
        "totalUsers": db.query(func.count(User.id)).scalar() or 0,
        "totalChapters": len(chapters),
        "completedChapters": db.query(func.count(UserProgress.id)).filter(UserProgress.completed.is_(True)).scalar() or 0,
        "activeChats": db.query(func.count(ChatSession.id)).scalar() or 0,
        "categoryProgress": category_progress,
    }


def content_analytics(db: Session, now: datetime = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    rows = (
        db.query(UserProgress, Chapter, Category)
        .join(Chapter, UserProgress.chapter_id == Chapter.id)
        .outerjoin(Category, Chapter.category_id == Category.id)
        .all()
    )

    per_chapter: Dict[int, Dict[str, Any]] = {}
    durations: Dict[int, List[float]] = defaultdict(list)
    trending: Dict[int, int] = defaultdict(int)
    week_ago = now - timedelta(days=TRENDING_DAYS)

    for progress, chapter, category in rows:
        stats = per_chapter.setdefault(chapter.id, {
            "chapterId": chapter.id,
            "title": chapter.title,
            "categoryTitle": category.title if category else None,
            "completions": 0,
            "started": 0,
            "lastCompleted": None,
        })
        stats["started"] += 1
        if progress.completed:
            stats["completions"] += 1
            if progress.completed_at:
                if stats["lastCompleted"] is None or progress.completed_at > stats["lastCompleted"]:
                    stats["lastCompleted"] = progress.completed_at
                if progress.created_at:
                    durations[chapter.id].append((progress.completed_at - progress.created_at).total_seconds() / 60)
                if progress.completed_at > week_ago:
                    trending[chapter.id] += 1

    chapter_stats = []
    for chapter_id, stats in per_chapter.items():
        minutes = durations.get(chapter_id)
        stats["completionRate"] = _pct(stats["completions"], stats["started"])
        stats["avgCompletionTime"] = round(sum(minutes) / len(minutes), 1) if minutes else None
        stats["lastCompleted"] = _iso(stats["lastCompleted"])
        chapter_stats.append(stats)
    chapter_stats.sort(key=lambda s: s["completions"], reverse=True)

    category_stats = []
    for category in db.query(Category).all():
        cat_rows = [(p, c) for p, c, cat in rows if cat is not None and cat.id == category.id]
        completions = sum(1 for p, _ in cat_rows if p.completed)
        category_stats.append({
            "categoryId": category.id,
            "categoryTitle": category.title,
            "totalChapters": db.query(func.count(Chapter.id)).filter(Chapter.category_id == category.id).scalar() or 0,
            "totalCompletions": completions,
            "totalUsers": len({p.user_id for p, _ in cat_rows}),
            "avgCompletionRate": _pct(completions, len(cat_rows)),
        })
    category_stats.sort(key=lambda s: s["totalCompletions"], reverse=True)

    trending_chapters = [
        {
            "chapterId": chapter_id,
            "title": per_chapter[chapter_id]["title"],
            "categoryTitle": per_chapter[chapter_id]["categoryTitle"],
            "recentCompletions": count,
            "trend": "up",
        }
        for chapter_id, count in sorted(trending.items(), key=lambda kv: kv[1], reverse=True)[:TRENDING_LIMIT]
    ]

    users = {p.user_id for p, _, _ in rows}
    active_users = {p.user_id for p, _, _ in rows if p.completed}
    total_completions = sum(s["completions"] for s in chapter_stats)

    return {
        "chapterStats": chapter_stats,
        "categoryStats": category_stats,
        "trendingChapters": trending_chapters,
        "userEngagement": {
            "totalUsers": len(users),
            "activeUsers": len(active_users),
            "avgChaptersPerUser": round(total_completions / len(users), 1) if users else 0,
            "completionRate": _pct(total_completions, len(rows)),
        },
        "summary": {
            "mostPopularChapter": chapter_stats[0] if chapter_stats else None,
            "leastEngagedChapters": list(reversed(chapter_stats[-3:])),
            "totalEngagement": total_completions,
        },
    }


def team_members(db: Session, now: datetime = None) -> List[Dict[str, Any]]:
    now = now or datetime.utcnow()
    week_ago = now - timedelta(days=TRENDING_DAYS)
    total_chapters = db.query(func.count(Chapter.id)).scalar() or 0

    completed_by_user: Dict[str, List[UserProgress]] = defaultdict(list)
    for p in db.query(UserProgress).filter(UserProgress.completed.is_(True)):
        completed_by_user[p.user_id].append(p)

    chat_messages: Dict[str, int] = defaultdict(int)
    for session in db.query(ChatSession):
        chat_messages[session.user_id] += sum(1 for m in session.messages or [] if m.get("role") == "user")

    members = []
    for user in db.query(User).order_by(User.created_at):
        completed = completed_by_user.get(user.id, [])
        members.append({
            "id": user.id,
            "email": user.email,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "role": "admin" if user.is_admin else "member",
            "joinedAt": _iso(user.created_at),
            "lastActive": _iso(user.updated_at),
            "progress": {
                "completedChapters": len(completed),
                "totalChapters": total_chapters,
                "percentage": completion_rate(len(completed), total_chapters),
            },
            "engagement": {
                "chatMessages": chat_messages.get(user.id, 0),
                "weeklyActivity": sum(1 for p in completed if p.completed_at and p.completed_at > week_ago),
            },
        })
    return members


def team_stats(db: Session) -> Dict[str, Any]:
    members = team_members(db)
    percentages = [m["progress"]["percentage"] for m in members]
    return {
        "totalMembers": len(members),
        "activeMembers": sum(1 for m in members if m["progress"]["completedChapters"] > 0),
        "averageProgress": round(sum(percentages) / len(percentages)) if percentages else 0,
        "totalChaptersCompleted": sum(m["progress"]["completedChapters"] for m in members),
    }
