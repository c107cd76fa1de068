"""FastUoW - 의존 순서 기반 벌크 커밋을 지원하는 Unit of Work 라이브러리."""
from fastuow.core import (  # noqa
    AbstractBackend,
    BackendNotBoundError,
    Entity,
    EntityType,
    FailureKind,
    FastUoWError,
    IllegalRegistrationError,
    Operation,
    PersistenceError,
    SaveError,
    SaveResult,
    UnitOfWorkClosedError,
    UnresolvedRelationshipError,
    UnsupportedTypeError,
)
from fastuow.ledger import Failure, FailureLedger, Relationship  # noqa
from fastuow.uow import SqlAlchemyUnitOfWork, UnitOfWork  # noqa

__version__ = "0.1"
