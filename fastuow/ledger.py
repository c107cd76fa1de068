"""관계 레저(Relationship Ledger)와 실패 레저(Failure Ledger).

관계는 등록 시점이 아니라 커밋 시점에 해소합니다. 관계를 선언하는 시점에는 부모
레코드가 아직 저장되지 않아 id가 없을 수 있기 때문입니다.
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from fastuow.core import (
    EntityType,
    FailureKind,
    Operation,
    SaveError,
    UnresolvedRelationshipError,
    has_identity,
)

DEPENDENCY_FAILURE_MESSAGE = "Dependent on a related record that failed earlier"


@dataclass(frozen=True)
class Relationship:
    """``record.field`` 에 ``related.id`` 가 들어가야 함을 나타내는 링크."""

    record: Any
    field: str
    related: Any

    def describe(self) -> str:
        return f"{type(self.record).__name__}.{self.field} -> {type(self.related).__name__}"


class RelationshipLedger:
    """자식 레코드 타입 하나에 대한 대기중인 외래키 링크 목록입니다.

    링크는 추가만 가능하며 개별적으로 삭제되지 않습니다. 해소는 등록된 순서대로
    진행합니다.
    """

    def __init__(self) -> None:
        self._relationships: list[Relationship] = []

    def __len__(self) -> int:
        return len(self._relationships)

    def __iter__(self) -> Iterator[Relationship]:
        return iter(self._relationships)

    def add(self, record: Any, field: str, related: Any) -> Relationship:
        relationship = Relationship(record, field, related)
        self._relationships.append(relationship)
        return relationship

    def resolve(self) -> None:
        """모든 링크에 대해 ``record.field = related.id`` 를 무조건 할당합니다.

        의존 순서대로 insert 했다면 부모는 이미 id를 가지고 있어야 합니다.
        id가 없다면 호출자가 관계를 잘못 등록한 것이므로 예외를 발생시킵니다.

        Raises:
            :class:`UnresolvedRelationshipError` 부모 레코드에 id가 없을 때.
        """
        for rel in self._relationships:
            if not has_identity(rel.related):
                raise UnresolvedRelationshipError(
                    f"cannot resolve {rel.describe()}: related record has no id yet"
                )
            setattr(rel.record, rel.field, rel.related.id)

    def resolve_allow_partial(self) -> list[Relationship]:
        """부모가 id를 가진 링크만 해소하고, 나머지는 의존 실패로 리턴합니다.

        값이 이미 같으면 할당하지 않습니다. 할당 중 발생한 예외(타입 오류 등)는
        그대로 전파됩니다.
        """
        failed: list[Relationship] = []
        for rel in self._relationships:
            if not has_identity(rel.related):
                failed.append(rel)
                continue
            if getattr(rel.record, rel.field, None) != rel.related.id:
                setattr(rel.record, rel.field, rel.related.id)
        return failed


@dataclass(frozen=True)
class Failure:
    """부분 성공 커밋에서 저장되지 못한 레코드 하나에 대한 기록."""

    record: Any
    entity_type: EntityType
    operation: Operation
    kind: FailureKind
    message: str

    def __str__(self) -> str:
        return self.message

    def describe(self) -> str:
        """``<Type> <operation>: <message>`` 형식의 한 줄 요약."""
        type_name = getattr(self.entity_type, "__name__", str(self.entity_type))
        return f"{type_name} {self.operation.value}: {self.message}"

    @classmethod
    def dependency(
        cls, relationship: Relationship, entity_type: EntityType, operation: Operation
    ) -> Failure:
        return cls(
            relationship.record,
            entity_type,
            operation,
            FailureKind.DEPENDENCY,
            f"{DEPENDENCY_FAILURE_MESSAGE} ({relationship.describe()})",
        )

    @classmethod
    def persistence(
        cls,
        record: Any,
        entity_type: EntityType,
        type_name: str,
        operation: Operation,
        errors: list[SaveError],
    ) -> Failure:
        detail = "; ".join(str(err) for err in errors) or "unknown error"
        return cls(
            record,
            entity_type,
            operation,
            FailureKind.PERSISTENCE,
            f"{operation.value.capitalize()} {type_name} failed: {detail}",
        )


class FailureLedger:
    """레코드 -> :class:`Failure` 매핑.

    레코드가 해시 가능하지 않아도 되도록 등록 시점에 부여된 상관 키(correlation key)
    로 인덱싱합니다. ``ledger[record]`` 처럼 레코드로 조회할 수 있습니다.
    """

    def __init__(self, key_of: Callable[[Any], Optional[int]]):
        self._key_of = key_of
        self._failures: dict[int, Failure] = {}

    def __repr__(self) -> str:
        return f"FailureLedger[{len(self)} failures]"

    def __len__(self) -> int:
        return len(self._failures)

    def __bool__(self) -> bool:
        return bool(self._failures)

    def __iter__(self) -> Iterator[Failure]:
        return iter(self._failures.values())

    def __contains__(self, record: Any) -> bool:
        key = self._key_of(record)
        return key is not None and key in self._failures

    def __getitem__(self, record: Any) -> Failure:
        failure = self.get(record)
        if failure is None:
            raise KeyError(record)
        return failure

    def get(self, record: Any) -> Optional[Failure]:
        key = self._key_of(record)
        if key is None:
            return None
        return self._failures.get(key)

    def add(self, failure: Failure) -> None:
        key = self._key_of(failure.record)
        if key is None:
            raise KeyError(f"record was never registered: {failure.record!r}")
        # 먼저 기록된 실패 원인을 유지합니다.
        self._failures.setdefault(key, failure)

    def items(self) -> Iterator[tuple[Any, Failure]]:
        return ((failure.record, failure) for failure in self)

    def records(self) -> list[Any]:
        return [failure.record for failure in self]

    def messages(self) -> dict[int, str]:
        """상관 키 -> 실패 메세지."""
        return {key: failure.message for key, failure in self._failures.items()}

    def summary(self, limit: Optional[int] = None) -> list[str]:
        """실패 순서대로 ``limit`` 개까지의 :meth:`Failure.describe` 목록."""
        return [failure.describe() for failure in itertools.islice(self, limit)]
