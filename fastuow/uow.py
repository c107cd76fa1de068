"""UnitOfWork 패턴 모듈.

스테이징된 작업을 의존 순서대로 벌크 실행하는 커밋 엔진과, SqlAlchemy 세션을 관리하는
기본 구현체를 제공합니다.
"""
from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from typing import Any, Callable, Mapping, Optional, Sequence

from fastuow.backend import SqlAlchemyBackend
from fastuow.core import (
    AbstractBackend,
    EntityType,
    Operation,
    SaveResult,
    UnitOfWorkClosedError,
    get_logger,
)
from fastuow.ledger import Failure, FailureLedger
from fastuow.orm import SessionMaker, get_sessionmaker
from fastuow.staging import StagingStore, TypeStage

logger = get_logger("fastuow.uow")

FAILURE_LOG_LIMIT = 5
"""WARNING 로그에 포함할 실패 메세지 수."""


class UnitOfWork:
    """여러 엔티티 타입에 대한 생성/수정/삭제 의도를 모았다가 한 번에 커밋합니다.

    ``entity_types`` 의 순서가 의존 순서입니다. 앞에 있는 타입은 뒤에 있는 타입을
    참조하면 안 됩니다. (예: ``[Account, Contact]``)

    하나의 인스턴스는 하나의 비즈니스 트랜잭션에서만 사용하며, 커밋은 한 번만
    가능합니다. 재시도하려면 새 UoW를 만들어 다시 등록해야 합니다.
    """

    def __init__(
        self,
        entity_types: Sequence[EntityType],
        backend: AbstractBackend,
    ) -> None:
        self.entity_types = tuple(entity_types)
        self.backend = backend
        self.staging = StagingStore(self.entity_types, backend.entity_type_of)
        self.committed = False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}[{self.staging!r}]"

    # 등록

    def register_new(
        self, record: Any, parent_field: Optional[str] = None, parent: Any = None
    ) -> None:
        """새 레코드를 insert 대기열에 추가합니다.

        ``parent_field`` 와 ``parent`` 를 함께 주면 커밋 시점에
        ``record.<parent_field> = parent.id`` 를 할당합니다.
        """
        self._ensure_open()
        self.staging.register_new(record, parent_field, parent)

    def register_relationship(self, record: Any, field: str, related: Any) -> None:
        """``record.field`` 가 커밋 시점에 ``related.id`` 를 가리키도록 등록합니다.

        이미 저장된(dirty) 레코드를 아직 저장되지 않은 레코드와 연결할 때 사용합니다.
        """
        self._ensure_open()
        self.staging.register_relationship(record, field, related)

    def register_dirty(self, record: Any) -> None:
        """기존 레코드를 update 대기열에 추가합니다."""
        self._ensure_open()
        self.staging.register_dirty(record)

    def register_deleted(self, record: Any) -> None:
        """기존 레코드를 delete 대기열에 추가합니다."""
        self._ensure_open()
        self.staging.register_deleted(record)

    def has_work_to_commit(self) -> bool:
        return self.staging.has_work()

    @property
    def new_records(self) -> Mapping[EntityType, tuple[Any, ...]]:
        return self.staging.snapshot(Operation.INSERT)

    @property
    def dirty_records(self) -> Mapping[EntityType, tuple[Any, ...]]:
        return self.staging.snapshot(Operation.UPDATE)

    @property
    def deleted_records(self) -> Mapping[EntityType, tuple[Any, ...]]:
        return self.staging.snapshot(Operation.DELETE)

    # 커밋

    def commit(self) -> None:
        """모든 작업을 all-or-none 으로 커밋합니다.

        작업 순서:
            1. 의존 순서대로 관계를 해소하고 insert 합니다.
            2. 의존 순서대로 update 합니다.
            3. 의존 역순으로 delete 합니다. (자식 -> 부모)

        도중에 어떤 예외라도 발생하면 커밋 전 세이브포인트로 롤백한 뒤 예외를 그대로
        다시 발생시킵니다.
        """
        self._run(self._commit_atomic)

    def commit_allow_partial_success(self) -> FailureLedger:
        """레코드 단위 실패를 허용하며 커밋합니다.

        insert/update 중 백엔드가 보고한 레코드 실패와, 실패한 부모에 의존하는 자식
        레코드는 리턴되는 :class:`FailureLedger` 에 기록될 뿐 예외를 발생시키지
        않습니다. delete 는 항상 all-or-none 입니다.

        예외가 없더라도 모든 레코드가 저장된 것은 아니므로 리턴값을 확인해야 합니다.
        """
        failures = FailureLedger(self.staging.keys.get)
        self._run(lambda: self._commit_partial(failures))
        if failures:
            logger.warning(
                "%d record(s) failed to commit, first: %s",
                len(failures),
                "; ".join(failures.summary(FAILURE_LOG_LIMIT)),
            )
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("all commit failures: %s", failures.summary())
        return failures

    def _ensure_open(self) -> None:
        if self.committed:
            raise UnitOfWorkClosedError("unit of work has already been committed")

    def _run(self, work: Callable[[], None]) -> None:
        """세이브포인트를 잡고 ``work`` 를 실행합니다. 실패하면 롤백합니다."""
        self._ensure_open()
        counts = {
            op.value: sum(len(stage.records(op)) for stage in self.staging)
            for op in Operation
        }

        savepoint = self.backend.begin_savepoint()
        self.committed = True
        try:
            work()
        except Exception:
            logger.exception("commit failed, rolling back %r", self)
            self.backend.rollback(savepoint)
            raise
        self.backend.release(savepoint)
        logger.info("committed %r (staged: %r)", self, counts)

    def _commit_atomic(self) -> None:
        if self.staging.has_work(Operation.INSERT):
            for stage in self.staging:
                stage.relationships.resolve()
                self._apply(Operation.INSERT, stage)

        if self.staging.has_work(Operation.UPDATE):
            for stage in self.staging:
                self._apply(Operation.UPDATE, stage)

        self._delete_all()

    def _commit_partial(self, failures: FailureLedger) -> None:
        for operation in (Operation.INSERT, Operation.UPDATE):
            for stage in self.staging:
                self._exclude_dependents(operation, stage, failures)
                results = self._apply(operation, stage, all_or_none=False)
                for result in results:
                    if result.success:
                        continue
                    failures.add(
                        Failure.persistence(
                            result.record,
                            stage.entity_type,
                            self.backend.type_name(stage.entity_type),
                            operation,
                            result.errors,
                        )
                    )

        self._delete_all()

    def _exclude_dependents(
        self, operation: Operation, stage: TypeStage, failures: FailureLedger
    ) -> None:
        """실패한 부모에 의존하는 레코드를 대기열에서 빼고 실패로 기록합니다."""
        excluded = []
        for rel in stage.relationships.resolve_allow_partial():
            if stage.contains(operation, rel.record):
                failures.add(Failure.dependency(rel, stage.entity_type, operation))
                excluded.append(rel.record)

        if excluded:
            logger.debug(
                "excluding %d dependent %s record(s) from %s",
                len(excluded),
                self.backend.type_name(stage.entity_type),
                operation.value,
            )
            stage.discard(operation, excluded)

    def _delete_all(self) -> None:
        # 삭제는 항상 all-or-none, 자식 타입부터 역순으로 진행합니다.
        if self.staging.has_work(Operation.DELETE):
            for stage in reversed(self.staging):
                self._apply(Operation.DELETE, stage)

    def _apply(
        self, operation: Operation, stage: TypeStage, all_or_none: bool = True
    ) -> list[SaveResult]:
        records = stage.records(operation)
        if not records:
            return []

        logger.debug(
            "%s %d %s record(s) (all_or_none=%s)",
            operation.value,
            len(records),
            self.backend.type_name(stage.entity_type),
            all_or_none,
        )
        return self.backend.bulk_apply(
            operation, stage.entity_type, list(records), all_or_none
        )


class SqlAlchemyUnitOfWork(UnitOfWork, AbstractContextManager["SqlAlchemyUnitOfWork"]):
    """``SqlAlchemy`` 세션을 이용한 UnitOfWork 구현입니다.

    Example: ::

        with SqlAlchemyUnitOfWork([Account, Contact]) as uow:
            account = Account(name="Acme")
            uow.register_new(account)
            uow.register_new(Contact(name="Kim"), "account_id", account)
            uow.commit()
    """

    def __init__(
        self,
        entity_types: Sequence[EntityType],
        get_session: Optional[SessionMaker] = None,
        tables: Optional[Mapping[EntityType, Any]] = None,
    ) -> None:
        super().__init__(entity_types, SqlAlchemyBackend(tables=tables))
        self.get_session = get_session or get_sessionmaker()
        self.session = None

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        """``with`` 블록에 진입했을 때 세션을 할당하고 백엔드에 연결합니다."""
        self.session = self.get_session()
        self.backend.session = self.session
        return self

    def __exit__(self, *args: Any) -> None:
        """``with`` 블록을 빠져나갈 때 커밋되지 않은 변경을 롤백하고 세션을 닫습니다."""
        if self.session:
            self.session.rollback()  # 이미 커밋 되었을 경우 아무 효과도 없음
            self.session.close()
        self.backend.session = None

    def commit(self) -> None:
        try:
            super().commit()
        except Exception:
            self.rollback()
            raise
        self.session.commit()

    def commit_allow_partial_success(self) -> FailureLedger:
        try:
            failures = super().commit_allow_partial_success()
        except Exception:
            self.rollback()
            raise
        self.session.commit()
        return failures

    def rollback(self) -> None:
        """세션을 롤백합니다."""
        if self.session:
            self.session.rollback()
