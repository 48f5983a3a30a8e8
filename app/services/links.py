# app/services/links.py
from typing import Optional

from app.database import generate_id
from app.exceptions import NotFoundError
from app.schemas import TaskLink, TaskOut
from app.services.store import EntityStore


class LinkService:
    def __init__(self, store: EntityStore):
        self.store = store

    def add_link(self, project_id: str, task_id: str, url: str, title: str) -> TaskLink:
        link = TaskLink(id=generate_id(), url=url, title=title)
        with self.store.transaction() as session:
            task = self.store.get_task(session, task_id, project_id, for_update=True)
            self.store.array_union(task, "links", link.model_dump())
        return link

    def remove_link(self, project_id: str, task_id: str, link_id: str) -> TaskOut:
        with self.store.transaction() as session:
            task = self.store.get_task(session, task_id, project_id, for_update=True)
            matching = [link for link in (task.links or []) if link.get("id") == link_id]
            if not matching:
                raise NotFoundError("link", link_id)
            self.store.array_remove(task, "links", *matching)
            return TaskOut.model_validate(task)

    def update_link(
        self,
        project_id: str,
        task_id: str,
        link_id: str,
        url: Optional[str] = None,
        title: Optional[str] = None,
    ) -> TaskLink:
        """Read-modify-write of one link inside a transaction"""
        with self.store.transaction() as session:
            task = self.store.get_task(session, task_id, project_id, for_update=True)
            links = [dict(link) for link in (task.links or [])]
            for link in links:
                if link.get("id") == link_id:
                    if url is not None:
                        link["url"] = url
                    if title is not None:
                        link["title"] = title
                    task.links = links
                    return TaskLink(**link)
            raise NotFoundError("link", link_id)
