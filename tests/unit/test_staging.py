"""스테이징(등록) 단위 테스트."""
import time

import pytest

from fastuow import IllegalRegistrationError, Operation, UnsupportedTypeError
from fastuow.test.unit import FakeBackend
from fastuow.uow import UnitOfWork
from tests.app.domain.models import Account, Contact, Note


def test_has_no_work_after_construction(uow: UnitOfWork):
    assert not uow.has_work_to_commit()
    assert all(not records for records in uow.new_records.values())


@pytest.mark.parametrize(
    "register",
    [
        lambda uow: uow.register_new(Account("Acme")),
        lambda uow: uow.register_dirty(Account("Acme", id=1)),
        lambda uow: uow.register_deleted(Account("Acme", id=1)),
    ],
)
def test_has_work_after_any_registration(uow: UnitOfWork, register):
    register(uow)
    assert uow.has_work_to_commit()


def test_relationship_alone_is_not_work(uow: UnitOfWork):
    uow.register_relationship(Contact("Kim", id=3), "account_id", Account("Acme"))
    assert not uow.has_work_to_commit()


def test_register_new_with_identity_fails(uow: UnitOfWork):
    with pytest.raises(IllegalRegistrationError):
        uow.register_new(Account("Acme", id=1))


@pytest.mark.parametrize("method", ["register_dirty", "register_deleted"])
def test_register_existing_without_identity_fails(uow: UnitOfWork, method: str):
    with pytest.raises(IllegalRegistrationError):
        getattr(uow, method)(Account("Acme"))


@pytest.mark.parametrize(
    "register",
    [
        lambda uow: uow.register_new(Note("memo")),
        lambda uow: uow.register_dirty(Note("memo", id=1)),
        lambda uow: uow.register_deleted(Note("memo", id=1)),
        lambda uow: uow.register_relationship(Note("memo", id=1), "account_id", Account("Acme")),
    ],
)
def test_undeclared_type_fails(uow: UnitOfWork, register):
    with pytest.raises(UnsupportedTypeError, match="Note"):
        register(uow)
    assert not uow.has_work_to_commit()


def test_relationship_checks_only_the_child_type(uow: UnitOfWork):
    contact = Contact("Kim", id=3)
    # 부모 레코드의 타입은 검사하지 않습니다.
    uow.register_relationship(contact, "account_id", Note("memo"))

    with pytest.raises(UnsupportedTypeError):
        uow.register_relationship(Note("memo"), "account_id", Account("Acme"))


def test_register_new_with_parent_records_relationship(uow: UnitOfWork):
    account = Account("Acme")
    contact = Contact("Kim")
    uow.register_new(account)
    uow.register_new(contact, "account_id", account)

    [rel] = list(uow.staging.stage(Contact).relationships)
    assert rel.record is contact
    assert rel.field == "account_id"
    assert rel.related is account


def test_register_new_requires_field_and_parent_together(uow: UnitOfWork):
    with pytest.raises(IllegalRegistrationError):
        uow.register_new(Contact("Kim"), "account_id")


def test_insertion_order_is_preserved(uow: UnitOfWork):
    accounts = [Account(f"acc-{i}") for i in range(5)]
    for account in accounts:
        uow.register_new(account)

    assert list(uow.new_records[Account]) == accounts


def test_duplicate_registration_is_ignored(uow: UnitOfWork):
    account = Account("Acme")
    uow.register_new(account)
    uow.register_new(account)

    existing = Account("Globex", id=7)
    uow.register_dirty(existing)
    uow.register_dirty(existing)

    assert len(uow.new_records[Account]) == 1
    assert len(uow.dirty_records[Account]) == 1


def test_equal_but_distinct_records_are_both_staged(uow: UnitOfWork):
    first, second = Account("Acme"), Account("Acme")
    assert first == second

    uow.register_new(first)
    uow.register_new(second)

    assert len(uow.new_records[Account]) == 2


def test_delete_supersedes_update(uow: UnitOfWork):
    account = Account("Acme", id=1)
    uow.register_dirty(account)
    uow.register_deleted(account)

    assert uow.dirty_records[Account] == ()
    assert uow.deleted_records[Account] == (account,)


def test_dirty_after_delete_fails(uow: UnitOfWork):
    account = Account("Acme", id=1)
    uow.register_deleted(account)

    with pytest.raises(IllegalRegistrationError, match="deleted"):
        uow.register_dirty(account)


def test_accessors_are_read_only(uow: UnitOfWork):
    uow.register_new(Account("Acme"))

    with pytest.raises(TypeError):
        uow.new_records[Account] = ()  # type: ignore

    assert isinstance(uow.new_records[Account], tuple)
    assert set(uow.deleted_records) == set(uow.entity_types)


def test_discarded_record_can_be_staged_again(uow: UnitOfWork):
    stage = uow.staging.stage(Account)
    first, second = Account("Acme", id=1), Account("Globex", id=2)
    uow.register_dirty(first)
    uow.register_dirty(second)

    stage.discard(Operation.UPDATE, [first, Account("Acme", id=1)])

    assert stage.to_update == [second]
    assert not stage.contains(Operation.UPDATE, first)
    uow.register_dirty(first)
    assert uow.dirty_records[Account] == (second, first)


def test_staging_many_linked_records_scales_linearly():
    uow = UnitOfWork([Account, Contact], FakeBackend())
    n = 20_000

    started = time.perf_counter()
    for i in range(n):
        account = Account(f"acc-{i}")
        uow.register_new(account)
        uow.register_new(account)
        uow.register_new(Contact(f"con-{i}"), "account_id", account)
    elapsed = time.perf_counter() - started

    assert len(uow.new_records[Account]) == n
    assert len(uow.new_records[Contact]) == n
    # 레코드마다 대기열 전체를 훑으면 수십 초가 걸립니다.
    assert elapsed < 5
