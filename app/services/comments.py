# app/services/comments.py
import logging
import re
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.database import generate_id
from app.models import ActivityType, Comment, Project, Task, User
from app.schemas import CommentOut, UserSummary
from app.services.activity_log import ActivityLog
from app.services.notification_service import NotificationService
from app.services.store import EntityStore

logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(r"@(\w+)")


class CommentService:
    """Task comments: counter increment and comment insert commit together"""

    def __init__(
        self,
        store: EntityStore,
        activity_log: Optional[ActivityLog] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.store = store
        self.activity_log = activity_log
        self.notifier = notifier

    def add_comment(self, project_id: str, task_id: str, author: UserSummary, content: str) -> CommentOut:
        with self.store.transaction() as session:
            task = self.store.get_task(session, task_id, project_id, for_update=True)
            comment, mentioned = self.add_in_session(session, task, author, content)
            session.flush()
            out = CommentOut.model_validate(comment)
            task_title = task.title

        self.after_commit(project_id, task_id, task_title, author, mentioned)
        return out

    def add_in_session(self, session: Session, task: Task, author: UserSummary, content: str) -> Tuple[Comment, List[UserSummary]]:
        """Write a comment as part of the caller's transaction. Returns the comment and mentioned members."""
        task.comments_count = (task.comments_count or 0) + 1
        comment = Comment(
            id=generate_id(),
            task_id=task.id,
            project_id=task.project_id,
            author=author.model_dump(),
            content=content,
        )
        session.add(comment)
        return comment, self._mentioned_members(session, task.project_id, content, author)

    def after_commit(
        self,
        project_id: str,
        task_id: str,
        task_title: str,
        author: UserSummary,
        mentioned: List[UserSummary],
    ) -> None:
        actor = author.display_name or "Someone"
        if self.activity_log:
            self.activity_log.record(
                project_id, ActivityType.COMMENT_ADDED,
                f"{actor} commented on task \"{task_title}\".", author, task_id,
            )
        if self.notifier:
            for member in mentioned:
                self.notifier.notify_comment_mention(project_id, task_id, task_title, member, author)

    def list_comments(self, project_id: str, task_id: str) -> List[CommentOut]:
        db = self.store.session()
        try:
            self.store.get_task(db, task_id, project_id)
            rows = db.query(Comment).filter(Comment.task_id == task_id).order_by(Comment.created_at).all()
            return [CommentOut.model_validate(row) for row in rows]
        finally:
            db.close()

    def _mentioned_members(self, session: Session, project_id: str, content: str, author: UserSummary) -> List[UserSummary]:
        names = set(MENTION_PATTERN.findall(content))
        if not names:
            return []
        project = session.get(Project, project_id)
        if project is None or not project.members:
            return []
        users = session.query(User).filter(User.id.in_(list(project.members.keys()))).all()
        return [
            UserSummary(**user.summary())
            for user in users
            if user.display_name in names and user.id != author.uid
        ]
