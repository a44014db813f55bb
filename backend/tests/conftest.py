import os
import sys
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

# 让 `import main` / `import app` 在未安装包时也能工作
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import WorkflowConfig, get_jwt_secret
from app.core.role_matrix import Role
from app.models.actor import ActorContext
from app.models.manuscript import ArticleSubmission
from app.models.user import UserProfile
from app.services.store import InMemoryWorkflowStore
from app.services.workflow_service import WorkflowStateMachine

# === 全局测试配置 ===
# 中文注释:
# 1. 引擎测试统一使用内存存储 + 可推进的假时钟，不依赖 Supabase。
# 2. API 测试通过 dependency_overrides 注入同一个引擎实例。

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


SEED_USERS = [
    UserProfile(id="author-1", email="author@example.com", full_name="Ada Author", roles=["author"]),
    UserProfile(id="author-2", email="author2@example.com", full_name="Ben Author", roles=["author"]),
    UserProfile(id="ea-1", email="ea@example.com", full_name="Eve Assistant", roles=["editorial-assistant"]),
    UserProfile(id="editor-1", email="editor1@example.com", full_name="Ed One", roles=["editor"]),
    UserProfile(id="editor-2", email="editor2@example.com", full_name="Ed Two", roles=["editor"]),
    UserProfile(id="me-1", email="me@example.com", full_name="Mia Managing", roles=["managing-editor"]),
    UserProfile(id="admin-1", email="admin@example.com", full_name="Root Admin", roles=["admin"]),
    UserProfile(
        id="rev-1",
        email="rev1@example.com",
        full_name="Rita Reviewer",
        roles=["reviewer"],
        expertise=["peer review", "workflow"],
        quality_score=90,
        completed_reviews=8,
    ),
    UserProfile(
        id="rev-2",
        email="rev2@example.com",
        full_name="Rob Reviewer",
        roles=["reviewer"],
        expertise=["state machines"],
        quality_score=60,
    ),
    UserProfile(id="rev-3", email="rev3@example.com", full_name="Rae Reviewer", roles=["reviewer"]),
    UserProfile(id="rev-4", email="rev4@example.com", full_name="Ray Reviewer", roles=["reviewer"]),
]


def actor_for(store, user_id: str) -> ActorContext:
    profile = store.load_user(user_id)
    roles = profile.roles if profile else [Role.AUTHOR]
    return ActorContext(user_id=user_id, roles=frozenset(roles))


def valid_submission(**overrides) -> ArticleSubmission:
    data = {
        "title": "Concurrency Guarantees in Editorial Workflow Engines",
        "abstract": ("This study examines how editorial workflow engines serialize manuscript state. " * 20).strip(),
        "category": "Computer Science",
        "keywords": ["peer review", "workflow", "state machines", "concurrency"],
        "authors": [
            {
                "first_name": "Ada",
                "last_name": "Author",
                "email": "author@example.com",
                "affiliation": "University of Testing",
                "is_corresponding_author": True,
            },
            {
                "first_name": "Carl",
                "last_name": "Coauthor",
                "email": "carl@example.com",
                "affiliation": "Institute of Examples",
            },
        ],
        "recommended_reviewers": [
            {"name": "Rita Reviewer", "email": "rev1@example.com", "affiliation": "Uni A"},
            {"name": "Rob Reviewer", "email": "rev2@example.com", "affiliation": "Uni B"},
            {"name": "Rae Reviewer", "email": "rev3@example.com", "affiliation": "Uni C"},
        ],
        "files": [{"name": "manuscript.pdf", "kind": "manuscript", "url": "s3://bucket/manuscript.pdf"}],
    }
    data.update(overrides)
    return ArticleSubmission.model_validate(data)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryWorkflowStore:
    s = InMemoryWorkflowStore()
    for user in SEED_USERS:
        s.save_user(user)
    return s


@pytest.fixture
def config() -> WorkflowConfig:
    return WorkflowConfig()


@pytest.fixture
def engine(store, clock, config) -> WorkflowStateMachine:
    return WorkflowStateMachine(store, config=config, clock=clock)


@pytest.fixture
def actors(store):
    return lambda user_id: actor_for(store, user_id)


@pytest.fixture
def submitted(engine, actors):
    """已投稿（submitted）的稿件"""
    result = engine.submit_article(valid_submission(), actors("author-1"))
    assert result.success, result.error
    return result.data


@pytest.fixture
def under_review(engine, actors, submitted):
    """已分配责任编辑 + 1 位审稿人（under_review）的稿件"""
    assert engine.assign_associate_editor(submitted.id, "editor-1", actors("ea-1")).success
    result = engine.assign_reviewer(submitted.id, "rev-1", actors("editor-1"))
    assert result.success, result.error
    return engine.store.load_manuscript(submitted.id)


# === HTTP ===


def generate_test_token(user_id: str = "00000000-0000-0000-0000-000000000000", *, expired: bool = False) -> str:
    secret = get_jwt_secret()
    now = datetime.now(timezone.utc)
    exp = now - timedelta(hours=1) if expired else now + timedelta(hours=1)
    payload = {
        "sub": user_id,
        "email": f"{user_id}@example.com",
        "aud": "authenticated",
        "exp": int(exp.timestamp()),
        "iat": int(now.timestamp()),
        "role": "authenticated",
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    return lambda user_id: {"Authorization": f"Bearer {generate_test_token(user_id)}"}


@pytest_asyncio.fixture
async def client(engine) -> AsyncGenerator:
    """
    异步测试客户端（注入测试引擎，事件投递替换为空操作）
    """
    from unittest.mock import MagicMock

    from main import app
    from app.api.deps import get_dispatcher, get_workflow_engine

    dispatcher = MagicMock()
    app.dependency_overrides[get_workflow_engine] = lambda: engine
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            ac.dispatcher = dispatcher  # type: ignore[attr-defined]
            yield ac
    finally:
        app.dependency_overrides.clear()
