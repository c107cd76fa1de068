# pylint: disable=redefined-outer-name, protected-access
"""pytest 에서 사용될 전역 Fixture들을 정의합니다."""
from __future__ import annotations

import logging
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fastuow.config import set_config
from fastuow.core import set_log_level
from fastuow.orm import SessionMaker, clear_mappers, init_engine, start_mappers
from fastuow.test.unit import FakeBackend
from fastuow.uow import UnitOfWork
from tests.app.adapters.orm import init_mappers
from tests.app.domain.models import Account, Contact, Opportunity

ENTITY_TYPES = [Account, Contact, Opportunity]
"""의존 순서대로 정렬된 테스트 엔티티 타입."""


def memory_sessionmaker() -> SessionMaker:
    clear_mappers()
    metadata = start_mappers(use_exist=False, init_hooks=[init_mappers])
    engine = init_engine(
        metadata,
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return sessionmaker(engine)


@pytest.fixture(autouse=True)
def reset_config() -> Generator[None, None, None]:
    """테스트가 끝나면 전역 설정을 초기화 합니다."""
    yield
    set_config(None)
    set_log_level(logging.INFO)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def uow(backend: FakeBackend) -> UnitOfWork:
    """``[Account, Contact, Opportunity]`` 를 관리하는 :class:`UnitOfWork` 픽스처."""
    return UnitOfWork(ENTITY_TYPES, backend)


@pytest.fixture
def get_session() -> Generator[SessionMaker, None, None]:
    """인메모리 SQLite 기반의 :class:`.Session` 팩토리를 리턴하는 픽스쳐 입니다.

    호출시마다 매핑과 테이블을 새로 생성합니다.
    """
    yield memory_sessionmaker()
    clear_mappers()


@pytest.fixture
def session(get_session: SessionMaker) -> Generator[Session, None, None]:
    session = get_session()
    yield session
    session.close()
