from typing import Optional, cast

from sqlalchemy import text
from sqlalchemy.orm import Session


def insert_account(session: Session, name: str) -> int:
    session.execute(text("INSERT INTO account (name) VALUES (:name)"), dict(name=name))
    [[account_id]] = session.execute(
        text("SELECT id FROM account WHERE name=:name"), dict(name=name)
    )
    return cast(int, account_id)


def insert_contact(session: Session, name: str, account_id: Optional[int] = None) -> int:
    session.execute(
        text("INSERT INTO contact (name, account_id) VALUES (:name, :account_id)"),
        dict(name=name, account_id=account_id),
    )
    [[contact_id]] = session.execute(
        text("SELECT id FROM contact WHERE name=:name"), dict(name=name)
    )
    return cast(int, contact_id)


def count_rows(session: Session, table: str) -> int:
    [[count]] = session.execute(text(f"SELECT count(*) FROM {table}"))
    return cast(int, count)
