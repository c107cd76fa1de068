"""스테이징 저장소.

엔티티 타입별로 insert/update/delete 대기열과 관계 레저를 하나의 :class:`TypeStage`
에 모아서 관리합니다.
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Sequence

from fastuow.core import (
    EntityType,
    IllegalRegistrationError,
    Operation,
    UnsupportedTypeError,
    has_identity,
)
from fastuow.ledger import RelationshipLedger

TypeResolver = Callable[[Any], EntityType]


def _no_members() -> dict[Operation, set[int]]:
    return {operation: set() for operation in Operation}


@dataclass
class TypeStage:
    """엔티티 타입 하나에 대한 스테이징 상태.

    대기열마다 ``id(record)`` 집합을 함께 유지해서 ``==`` 이 아닌 객체 동일성으로
    포함 여부를 검사합니다. 대기열에 있는 레코드는 참조가 유지되므로 ``id()`` 가
    재사용되지 않습니다.
    """

    entity_type: EntityType
    to_insert: list[Any] = field(default_factory=list)
    to_update: list[Any] = field(default_factory=list)
    to_delete: list[Any] = field(default_factory=list)
    relationships: RelationshipLedger = field(default_factory=RelationshipLedger)
    _members: dict[Operation, set[int]] = field(
        default_factory=_no_members, init=False, repr=False
    )

    def records(self, operation: Operation) -> list[Any]:
        return {
            Operation.INSERT: self.to_insert,
            Operation.UPDATE: self.to_update,
            Operation.DELETE: self.to_delete,
        }[operation]

    def contains(self, operation: Operation, record: Any) -> bool:
        return id(record) in self._members[operation]

    def add(self, operation: Operation, record: Any) -> bool:
        """대기열 끝에 레코드를 추가합니다. 이미 있으면 ``False`` 를 리턴합니다."""
        if self.contains(operation, record):
            return False
        self._members[operation].add(id(record))
        self.records(operation).append(record)
        return True

    def discard(self, operation: Operation, records: Iterable[Any]) -> None:
        """대기열에서 주어진 레코드들을 제외합니다."""
        members = self._members[operation]
        excluded = {id(it) for it in records} & members
        if not excluded:
            return
        pending = self.records(operation)
        pending[:] = [it for it in pending if id(it) not in excluded]
        members -= excluded


class RecordKeys:
    """등록된 레코드마다 안정적인 상관 키(correlation key)를 부여합니다.

    레코드에 대한 강한 참조를 함께 보관하므로 UoW가 살아있는 동안 키가 재사용되지
    않습니다.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._keys: dict[int, tuple[int, Any]] = {}

    def assign(self, record: Any) -> int:
        entry = self._keys.get(id(record))
        if entry is None:
            entry = (next(self._counter), record)
            self._keys[id(record)] = entry
        return entry[0]

    def get(self, record: Any) -> Optional[int]:
        entry = self._keys.get(id(record))
        return entry[0] if entry else None


class StagingStore:
    """타입별 insert/update/delete 대기열을 관리하고 등록 유효성을 검사합니다."""

    def __init__(
        self,
        entity_types: Sequence[EntityType],
        entity_type_of: TypeResolver = type,
    ) -> None:
        self.entity_types = tuple(entity_types)
        self.entity_type_of = entity_type_of
        self.keys = RecordKeys()
        self._stages: dict[EntityType, TypeStage] = {
            entity_type: TypeStage(entity_type) for entity_type in self.entity_types
        }

    def __repr__(self) -> str:
        names = ", ".join(getattr(t, "__name__", str(t)) for t in self.entity_types)
        return f"StagingStore[{names}]"

    def __iter__(self) -> Iterator[TypeStage]:
        """선언된 의존 순서대로 :class:`TypeStage` 를 순회합니다."""
        return (self._stages[entity_type] for entity_type in self.entity_types)

    def __reversed__(self) -> Iterator[TypeStage]:
        return (self._stages[entity_type] for entity_type in reversed(self.entity_types))

    def stage(self, entity_type: EntityType) -> TypeStage:
        try:
            return self._stages[entity_type]
        except KeyError:
            raise UnsupportedTypeError(entity_type) from None

    def stage_of(self, record: Any) -> TypeStage:
        """레코드의 타입에 해당하는 :class:`TypeStage` 를 리턴합니다.

        Raises:
            :class:`UnsupportedTypeError` 레코드 타입이 선언되지 않았을 때.
        """
        return self.stage(self.entity_type_of(record))

    def register_new(
        self, record: Any, parent_field: Optional[str] = None, parent: Any = None
    ) -> None:
        stage = self.stage_of(record)
        if has_identity(record):
            raise IllegalRegistrationError(
                f"only new records can be registered as new: {record!r}"
            )
        if (parent_field is None) != (parent is None):
            raise IllegalRegistrationError(
                "parent_field and parent must be given together"
            )

        if stage.add(Operation.INSERT, record):
            self.keys.assign(record)

        if parent is not None:
            self.register_relationship(record, parent_field, parent)

    def register_relationship(self, record: Any, field: str, related: Any) -> None:
        # 타입 검사는 자식 레코드에 대해서만 수행합니다.
        stage = self.stage_of(record)
        stage.relationships.add(record, field, related)
        self.keys.assign(record)

    def register_dirty(self, record: Any) -> None:
        stage = self.stage_of(record)
        if not has_identity(record):
            raise IllegalRegistrationError(
                f"new records can't be registered as dirty: {record!r}"
            )
        if stage.contains(Operation.DELETE, record):
            raise IllegalRegistrationError(
                f"record is already registered as deleted: {record!r}"
            )

        if stage.add(Operation.UPDATE, record):
            self.keys.assign(record)

    def register_deleted(self, record: Any) -> None:
        stage = self.stage_of(record)
        if not has_identity(record):
            raise IllegalRegistrationError(
                f"new records can't be registered as deleted: {record!r}"
            )

        # 삭제가 수정보다 우선합니다.
        stage.discard(Operation.UPDATE, [record])
        if stage.add(Operation.DELETE, record):
            self.keys.assign(record)

    def has_work(self, operation: Optional[Operation] = None) -> bool:
        """대기중인 작업이 있는지 여부. ``operation`` 이 주어지면 해당 작업만 검사합니다."""
        operations = [operation] if operation else list(Operation)
        return any(stage.records(op) for stage in self for op in operations)

    def snapshot(self, operation: Operation) -> Mapping[EntityType, tuple[Any, ...]]:
        """읽기 전용 타입 -> 레코드 튜플 매핑."""
        return MappingProxyType(
            {stage.entity_type: tuple(stage.records(operation)) for stage in self}
        )
