"""SqlAlchemy 백엔드.

엔티티 클래스별로 :mod:`fastuow.orm` 에 등록된 테이블에 대해 Core ``INSERT`` /
``UPDATE`` / ``DELETE`` 구문을 실행합니다. 부분 성공 모드에서는 레코드마다 중첩
세이브포인트를 잡아서 실패한 레코드만 되돌립니다.
"""
from __future__ import annotations

import re
from typing import Any, Callable, Mapping, Optional, Sequence

from sqlalchemy import Table, delete, insert, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.session import SessionTransaction

from fastuow.core import (
    AbstractBackend,
    BackendNotBoundError,
    EntityType,
    FastUoWError,
    PersistenceError,
    SaveError,
    SaveResult,
    get_logger,
)
from fastuow.orm import TABLES

logger = get_logger("fastuow.backend")

ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"


def _status_code(ex: DBAPIError) -> str:
    """예외 클래스 이름을 ``INTEGRITY_ERROR`` 같은 상태 코드로 바꿉니다."""
    name = type(ex).__name__
    if isinstance(ex, IntegrityError):
        name = IntegrityError.__name__
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).upper()


def to_save_error(ex: DBAPIError, table: Table) -> SaveError:
    """DBAPI 에러를 :class:`SaveError` 로 변환합니다.

    에러 메세지에 언급된 컬럼들을 ``fields`` 로 추출합니다.
    """
    message = str(ex.orig) if ex.orig is not None else str(ex)
    fields = tuple(
        c.key
        for c in table.columns
        if f"{table.name}.{c.name}" in message or f'"{c.name}"' in message
    )
    return SaveError(message, _status_code(ex), fields)


class SqlAlchemyBackend(AbstractBackend):
    """SqlAlchemy :class:`~sqlalchemy.orm.Session` 을 저장소로 하는 백엔드입니다."""

    def __init__(
        self,
        session: Optional[Session] = None,
        tables: Optional[Mapping[EntityType, Table]] = None,
    ):
        self.session = session
        self.tables = tables if tables is not None else TABLES

    def __repr__(self) -> str:
        return f"SqlAlchemyBackend[{', '.join(t.name for t in self.tables.values())}]"

    @property
    def bound_session(self) -> Session:
        if self.session is None:
            raise BackendNotBoundError("backend has no session, use it in a `with` block")
        return self.session

    def table_for(self, entity_type: EntityType) -> Table:
        try:
            return self.tables[entity_type]
        except KeyError:
            raise FastUoWError(f"{self.type_name(entity_type)} is not mapped to a table") from None

    def type_name(self, entity_type: EntityType) -> str:
        return getattr(entity_type, "__name__", str(entity_type))

    def begin_savepoint(self) -> SessionTransaction:
        return self.bound_session.begin_nested()

    def rollback(self, savepoint: SessionTransaction) -> None:
        savepoint.rollback()

    def release(self, savepoint: SessionTransaction) -> None:
        savepoint.commit()

    def bulk_insert(
        self, entity_type: EntityType, records: Sequence[Any], all_or_none: bool = True
    ) -> list[SaveResult]:
        table = self.table_for(entity_type)

        def _insert(record: Any) -> Optional[SaveError]:
            values = self._values(table, record)
            result = self.bound_session.execute(insert(table).values(**values))
            record.id = result.inserted_primary_key[0]
            return None

        return self._execute(table, records, _insert, all_or_none)

    def bulk_update(
        self, entity_type: EntityType, records: Sequence[Any], all_or_none: bool = True
    ) -> list[SaveResult]:
        table = self.table_for(entity_type)

        def _update(record: Any) -> Optional[SaveError]:
            values = self._values(table, record)
            stmt = update(table).where(table.c.id == record.id).values(**values)
            return self._check_found(table, record, self.bound_session.execute(stmt))

        return self._execute(table, records, _update, all_or_none)

    def bulk_delete(
        self, entity_type: EntityType, records: Sequence[Any], all_or_none: bool = True
    ) -> list[SaveResult]:
        table = self.table_for(entity_type)

        def _delete(record: Any) -> Optional[SaveError]:
            stmt = delete(table).where(table.c.id == record.id)
            return self._check_found(table, record, self.bound_session.execute(stmt))

        return self._execute(table, records, _delete, all_or_none)

    def _values(self, table: Table, record: Any) -> dict[str, Any]:
        """레코드에서 테이블 컬럼 값들을 읽습니다. ``id`` 는 제외합니다."""
        return {
            c.key: getattr(record, c.key)
            for c in table.columns
            if c.key != "id" and hasattr(record, c.key)
        }

    def _check_found(self, table: Table, record: Any, result: Any) -> Optional[SaveError]:
        if result.rowcount == 0:
            return SaveError(
                f"{table.name} with id={record.id!r} does not exist", ENTITY_NOT_FOUND
            )
        return None

    def _execute(
        self,
        table: Table,
        records: Sequence[Any],
        statement: Callable[[Any], Optional[SaveError]],
        all_or_none: bool,
    ) -> list[SaveResult]:
        if all_or_none:
            return self._execute_all_or_none(table, records, statement)

        results = []
        for record in records:
            savepoint = self.bound_session.begin_nested()
            try:
                error = statement(record)
            except DBAPIError as ex:
                savepoint.rollback()
                logger.debug("%s failed for %r: %s", table.name, record, ex.orig)
                results.append(SaveResult.failed(record, to_save_error(ex, table)))
                continue

            savepoint.commit()
            if error:
                results.append(SaveResult.failed(record, error))
            else:
                results.append(SaveResult(record))
        return results

    def _execute_all_or_none(
        self,
        table: Table,
        records: Sequence[Any],
        statement: Callable[[Any], Optional[SaveError]],
    ) -> list[SaveResult]:
        results = []
        for record in records:
            error = statement(record)
            results.append(SaveResult.failed(record, error) if error else SaveResult(record))

        failed = [r for r in results if not r.success]
        if failed:
            detail = "; ".join(str(err) for r in failed for err in r.errors)
            raise PersistenceError(f"{table.name}: {detail}", results)
        return results
