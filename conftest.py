from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.database import Base, generate_id, get_db
from app.models import Feature, FeatureStatus, Project, Task, TaskStatus, User
from app.schemas import UserSummary
from app.services.dependency_graph import blocked_by_edge, blocking_edge
from app.services.store import EntityStore
from app.services.websocket_manager import WebSocketManager
from app.services.workflow import WorkflowServices, get_workflow
from app.utils.auth import create_access_token


class FakeClock:
    """Clock that only moves when told to"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class Factory:
    """Inserts rows directly so tests can start from any state"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _add(self, obj):
        db = self.session_factory()
        try:
            db.add(obj)
            db.commit()
            return obj.id
        finally:
            db.close()

    def user(self, display_name: str = "Ana", email: Optional[str] = None) -> UserSummary:
        user_id = self._add(User(
            id=generate_id(),
            email=email or f"{display_name.lower()}-{generate_id()[:6]}@example.com",
            display_name=display_name,
        ))
        return UserSummary(uid=user_id, display_name=display_name)

    def email_of(self, user: UserSummary) -> str:
        db = self.session_factory()
        try:
            return db.get(User, user.uid).email
        finally:
            db.close()

    def project(self, owner: UserSummary, members: Optional[List[UserSummary]] = None) -> str:
        roles = {owner.uid: "owner"}
        for member in members or []:
            roles[member.uid] = "editor"
        return self._add(Project(id=generate_id(), name="Apollo", owner_id=owner.uid, members=roles))

    def feature(
        self,
        project_id: str,
        status: FeatureStatus = FeatureStatus.IN_DEVELOPMENT,
        module_id: Optional[str] = None,
        test_cases: Optional[list] = None,
        name: str = "Checkout",
    ) -> str:
        return self._add(Feature(
            id=generate_id(),
            project_id=project_id,
            module_id=module_id,
            name=name,
            status=status,
            user_flows=[],
            test_cases=test_cases or [],
        ))

    def task(
        self,
        project_id: str,
        status: TaskStatus = TaskStatus.TODO,
        feature_id: Optional[str] = None,
        assignee: Optional[UserSummary] = None,
        title: str = "Task",
    ) -> str:
        return self._add(Task(
            id=generate_id(),
            project_id=project_id,
            title=title,
            description="",
            status=status,
            assignee=assignee.model_dump() if assignee else None,
            feature_id=feature_id,
            dependencies=[],
            time_logs=[],
            links=[],
        ))

    def block(self, source_id: str, target_id: str) -> None:
        """Write a source-blocks-target edge on both endpoints"""
        db = self.session_factory()
        try:
            source = db.get(Task, source_id)
            target = db.get(Task, target_id)
            source.dependencies = list(source.dependencies) + [blocking_edge(target_id)]
            target.dependencies = list(target.dependencies) + [blocked_by_edge(source_id)]
            db.commit()
        finally:
            db.close()

    def set_timer(self, user: UserSummary, project_id: str, task_id: str, start_time: datetime) -> None:
        db = self.session_factory()
        try:
            db.get(User, user.uid).active_timer = {
                "project_id": project_id,
                "task_id": task_id,
                "start_time": start_time.isoformat(),
            }
            db.commit()
        finally:
            db.close()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def store(session_factory):
    return EntityStore(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def workflow(store, clock):
    return WorkflowServices(store, clock=clock, sockets=WebSocketManager())


@pytest.fixture
def factory(session_factory):
    return Factory(session_factory)


@pytest.fixture
def actor(factory):
    return factory.user("Ana")


@pytest.fixture
def project_id(factory, actor):
    return factory.project(actor)


@pytest.fixture
def client(workflow, session_factory):
    from main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_workflow] = lambda: workflow
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def token(factory, actor):
    return create_access_token(factory.email_of(actor))


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}
