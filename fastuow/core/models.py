from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, Type, TypeVar


class Entity(Protocol):
    """Entity 프로토콜 명세."""

    id: Any  # PK 컬럼으로 id 라는 필드를 제공해야 합니다. None 이면 새 레코드입니다.


E = TypeVar("E", bound=Entity)
EntityType = Type[Any]
"""엔티티 타입 디스크립터. UoW 에서는 레코드의 클래스 자체를 사용합니다."""


def has_identity(record: Any) -> bool:
    """레코드가 백엔드에서 할당받은 id를 가지고 있는지 여부."""
    return getattr(record, "id", None) is not None


class Operation(str, enum.Enum):
    """벌크 작업 종류."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class FailureKind(str, enum.Enum):
    """부분 성공 커밋에서 기록되는 실패 종류."""

    DEPENDENCY = "dependency"
    """관계된 부모 레코드가 먼저 실패해서 제외된 경우."""

    PERSISTENCE = "persistence"
    """백엔드가 레코드 단위 저장 실패를 보고한 경우."""


@dataclass(frozen=True)
class SaveError:
    """백엔드가 보고한 레코드 단위 에러 정보."""

    message: str
    status_code: str = "UNKNOWN_EXCEPTION"
    fields: tuple[str, ...] = ()

    def __str__(self) -> str:
        text = f"{self.status_code}: {self.message}"
        if self.fields:
            text += f" (fields: {', '.join(self.fields)})"
        return text


@dataclass
class SaveResult:
    """벌크 작업에서 레코드 하나에 대한 결과."""

    record: Any
    success: bool = True
    errors: list[SaveError] = field(default_factory=list)

    @classmethod
    def failed(cls, record: Any, *errors: SaveError) -> SaveResult:
        return cls(record, success=False, errors=list(errors))


class AbstractBackend(abc.ABC):
    """UoW 가 사용하는 영구 저장소 백엔드의 추상 인터페이스입니다.

    벌크 작업 메소드는 입력 순서대로 :class:`SaveResult` 리스트를 리턴해야 합니다.
    ``all_or_none`` 이 참이면 레코드 하나라도 실패할 경우 예외를 발생시켜야 합니다.
    """

    @abc.abstractmethod
    def begin_savepoint(self) -> Any:
        """세이브포인트를 생성하고 핸들을 리턴합니다."""
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self, savepoint: Any) -> None:
        """세이브포인트 시점으로 롤백합니다."""
        raise NotImplementedError

    def release(self, savepoint: Any) -> None:
        """작업이 성공했을 때 세이브포인트를 해제합니다."""
        return

    @abc.abstractmethod
    def bulk_insert(
        self, entity_type: EntityType, records: Sequence[Any], all_or_none: bool = True
    ) -> list[SaveResult]:
        raise NotImplementedError

    @abc.abstractmethod
    def bulk_update(
        self, entity_type: EntityType, records: Sequence[Any], all_or_none: bool = True
    ) -> list[SaveResult]:
        raise NotImplementedError

    @abc.abstractmethod
    def bulk_delete(
        self, entity_type: EntityType, records: Sequence[Any], all_or_none: bool = True
    ) -> list[SaveResult]:
        raise NotImplementedError

    def bulk_apply(
        self,
        operation: Operation,
        entity_type: EntityType,
        records: Sequence[Any],
        all_or_none: bool = True,
    ) -> list[SaveResult]:
        """``operation`` 에 해당하는 벌크 메소드로 라우팅 합니다."""
        method = getattr(self, f"bulk_{operation.value}")
        return method(entity_type, records, all_or_none)

    def entity_type_of(self, record: Any) -> EntityType:
        """레코드의 엔티티 타입을 리턴합니다."""
        return type(record)

    def type_name(self, entity_type: EntityType) -> str:
        """진단 메세지에 사용할 엔티티 타입 이름."""
        return getattr(entity_type, "__name__", str(entity_type))
