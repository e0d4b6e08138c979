"""Shared fixtures for integration tests (SQLite-backed)."""

from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio

from flowchord import models
from flowchord.config import Settings
from flowchord.core.background_executor import BackgroundExecutionManager
from flowchord.core.executor import WorkflowExecutor
from flowchord.core.types import generate_id
from flowchord.db.database import create_engine, create_session_factory, init_db
from flowchord.repositories.workflow_repo import WorkflowRepository
from flowchord.services.execution_recorder import SQLExecutionRecorder, dump_json
from flowchord.services.execution_service import ExecutionService


@pytest.fixture
def db_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'flowchord.db'}",
        retry_base_delay=0.0,
        smtp_host="smtp.test.local",
    )


@pytest_asyncio.fixture
async def db_engine(db_settings):
    """Create test database engine with the schema in place."""
    engine = create_engine(db_settings)
    await init_db(engine, db_settings)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def bg_manager():
    manager = BackgroundExecutionManager()
    yield manager
    await manager.shutdown()


@pytest.fixture
def service(registry, session_factory, bg_manager, db_settings) -> ExecutionService:
    """Execution service wired to SQLite, with scripted provider adapters."""
    executor = WorkflowExecutor(
        registry,
        SQLExecutionRecorder(session_factory),
        settings=db_settings,
        event_emitter=bg_manager,
    )
    return ExecutionService(executor, session_factory, bg_manager)


@pytest.fixture
def seed_workflow(session_factory):
    """Factory persisting a workflow and its nodes; returns the workflow id."""

    async def _seed(*nodes: dict[str, Any], owner_id: str = "user-1", **policy: Any) -> str:
        workflow_id = generate_id()
        async with session_factory() as session:
            async with session.begin():
                repo = WorkflowRepository(session)
                await repo.create(models.Workflow(
                    id=workflow_id,
                    owner_id=owner_id,
                    name="Integration workflow",
                    **policy,
                ))
                for node in nodes:
                    await repo.add_node(models.Node(
                        id=node["id"],
                        workflow_id=workflow_id,
                        owner_id=owner_id,
                        name=node["id"],
                        type=node["type"],
                        config=dump_json(node.get("config", {})),
                        connections=dump_json(node.get("connections", [])),
                    ))
        return workflow_id

    return _seed
