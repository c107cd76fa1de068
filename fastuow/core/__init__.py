"""UnitOfWork 코어 모듈.

UoW 는 하나의 비즈니스 트랜잭션 동안 여러 엔티티 타입에 대한 생성/수정/삭제 의도를
모아 두었다가, 커밋 시점에 타입 의존 순서대로 벌크 작업을 실행합니다.

- 아직 저장되지 않은 부모 레코드에 대한 외래키를 커밋 시점에 해소합니다.
- 의존 순서대로 insert/update 하고, delete 는 역순으로 실행합니다.
- all-or-none 커밋과 부분 성공(partial success) 커밋을 모두 지원합니다.
"""
from ._logging import get_logger, set_log_level  # noqa
from .errors import (  # noqa
    BackendNotBoundError,
    FastUoWError,
    IllegalRegistrationError,
    PersistenceError,
    UnitOfWorkClosedError,
    UnresolvedRelationshipError,
    UnsupportedTypeError,
)
from .models import (  # noqa
    AbstractBackend,
    Entity,
    EntityType,
    FailureKind,
    Operation,
    SaveError,
    SaveResult,
    has_identity,
)
