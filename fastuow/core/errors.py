"""FastUoW 예외 정의."""
from __future__ import annotations

from typing import Any, Sequence


class FastUoWError(Exception):
    """``FastUoW`` 와 관련된 모든 에러의 기본 클래스."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnsupportedTypeError(FastUoWError):
    """UoW 생성시 선언되지 않은 엔티티 타입을 등록하려 할 때 발생합니다."""

    def __init__(self, entity_type: Any):
        name = getattr(entity_type, "__name__", repr(entity_type))
        super().__init__(f"{name} is not supported by this unit of work")
        self.entity_type = entity_type


class IllegalRegistrationError(FastUoWError):
    """레코드 상태(id 유무)가 등록 조건에 맞지 않을 때 발생합니다.

    예: id 가 있는 레코드를 ``register_new`` 로 등록하거나, id 가 없는 레코드를
    ``register_dirty`` / ``register_deleted`` 로 등록한 경우.
    """


class UnresolvedRelationshipError(FastUoWError):
    """엄격 모드에서 부모 레코드의 id가 아직 없는 관계를 해소하려 할 때 발생합니다."""


class PersistenceError(FastUoWError):
    """백엔드가 all-or-none 벌크 작업 중 레코드 저장 실패를 보고했을 때 발생합니다."""

    def __init__(self, message: str, results: Sequence[Any] = ()):
        super().__init__(message)
        self.results = list(results)


class UnitOfWorkClosedError(FastUoWError):
    """이미 커밋된 UoW를 다시 사용하려 할 때 발생합니다."""


class BackendNotBoundError(FastUoWError):
    """세션이 연결되지 않은 백엔드를 사용하려 할 때 발생합니다."""
