"""ORM 어댑터 모듈.

엔티티 클래스와 SqlAlchemy :class:`~sqlalchemy.Table` 의 매핑을 관리하고, 세션
팩토리를 생성합니다. 매핑은 ORM mapper 가 아닌 단순한 레지스트리이며 실제 SQL은
:mod:`fastuow.backend` 가 Core 구문으로 실행합니다.
"""
from __future__ import annotations

from typing import Any, Callable, Optional, Type, cast

from sqlalchemy import MetaData, Table, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session
from sqlalchemy.pool import Pool

from fastuow.config import FastUoWConfig, get_config
from fastuow.core import FastUoWError, get_logger

SessionMaker = Callable[[], Session]
"""Session 팩토리 타입."""

logger = get_logger("fastuow.orm")

metadata: Optional[MetaData] = None
TABLES: dict[Type[Any], Table] = {}
"""엔티티 클래스 -> 테이블 레지스트리."""

__session_factory: Optional[SessionMaker] = None


def map_entity(entity_class: Type[Any], table: Table) -> Table:
    """엔티티 클래스를 테이블에 매핑합니다.

    테이블은 ``id`` 라는 이름의 단일 PK 컬럼을 가져야 합니다.
    """
    if "id" not in table.c or not table.c.id.primary_key:
        raise FastUoWError(f"table {table.name!r} must have an 'id' primary key column")

    existing = TABLES.get(entity_class)
    if existing is not None and existing is not table:
        raise FastUoWError(f"{entity_class.__name__} is already mapped to {existing.name!r}")

    TABLES[entity_class] = table
    return table


def get_table(entity_class: Type[Any]) -> Table:
    try:
        return TABLES[entity_class]
    except KeyError:
        raise FastUoWError(f"{entity_class!r} is not mapped to a table") from None


def start_mappers(
    use_exist: bool = True, init_hooks: list[Callable[[MetaData], Any]] = None
) -> MetaData:
    """사용자 매핑 함수(``init_hooks``)를 실행해 테이블 매핑을 등록합니다."""
    global metadata  # pylint: disable=global-statement,invalid-name
    if use_exist and metadata:
        return metadata

    metadata = MetaData()

    if init_hooks:
        for hook in init_hooks:
            hook(metadata)

    return metadata


def clear_mappers() -> None:
    """테이블 매핑을 초기화 합니다."""
    global metadata, __session_factory  # pylint: disable=global-statement,invalid-name

    TABLES.clear()
    metadata = None
    __session_factory = None


def init_engine(
    meta: MetaData,
    url: str,
    connect_args: Optional[dict[str, Any]] = None,
    poolclass: Optional[Type[Pool]] = None,
    echo: bool = False,
    drop_all: bool = False,
) -> Engine:
    """ORM Engine을 초기화 하고 매핑된 테이블을 생성합니다."""
    engine = create_engine(
        url,
        connect_args=connect_args or {},
        poolclass=poolclass,
        echo=echo,
    )

    if engine.dialect.name == "sqlite":
        enable_sqlite_savepoints(engine)

    if drop_all:
        meta.drop_all(engine)

    meta.create_all(engine)
    logger.debug("engine initialized: %s (%d tables)", url, len(meta.tables))
    return engine


def enable_sqlite_savepoints(engine: Engine) -> None:
    """pysqlite 드라이버에서 SAVEPOINT 가 올바르게 동작하도록 트랜잭션 시작을 직접 관리합니다.

    pysqlite 는 첫 DML 전까지 BEGIN 을 미루기 때문에 세이브포인트가 트랜잭션 밖에서
    만들어질 수 있습니다.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_db(
    init_hooks: list[Callable[[MetaData], Any]] = None,
    config: Optional[FastUoWConfig] = None,
    drop_all: bool = False,
) -> SessionMaker:
    """설정을 이용해 DB 엔진과 세션 팩토리를 초기화 합니다."""
    config = config or get_config()
    meta = start_mappers(init_hooks=init_hooks)
    engine = init_engine(
        meta,
        config.db_url,
        connect_args=config.get_db_connect_args(),
        poolclass=config.get_db_poolclass(),
        echo=config.echo,
        drop_all=drop_all,
    )
    return cast(SessionMaker, sessionmaker(engine))


def get_sessionmaker() -> SessionMaker:
    """기본설정으로 SqlAlchemy Session 팩토리를 만듭니다."""
    global __session_factory  # pylint: disable=global-statement,invalid-name

    if not __session_factory:
        __session_factory = init_db()

    return __session_factory


def set_default_sessionmaker(session_factory: Optional[SessionMaker]) -> None:
    """:func:`get_sessionmaker` 가 리턴할 세션 팩토리를 지정합니다."""
    global __session_factory  # pylint: disable=global-statement,invalid-name

    __session_factory = session_factory
