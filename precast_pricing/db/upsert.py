# precast_pricing/db/upsert.py
'''
Atomic insert-or-update keyed by a unique constraint.

SQLite / PostgreSQL use INSERT ... ON CONFLICT DO UPDATE, MySQL uses
ON DUPLICATE KEY UPDATE. Any other dialect falls back to check-then-write
inside a SAVEPOINT, retried once when a concurrent insert wins the race.
'''
from datetime import datetime
from typing import Any, Dict, Sequence, Type

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from precast_pricing.logger import get_logger

logger = get_logger(__name__)


def _dialect_insert(dialect_name: str):
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect_name in ("mysql", "mariadb"):
        from sqlalchemy.dialects.mysql import insert
        return insert
    return None


def upsert(
    db: Session,
    model: Type[Any],
    *,
    values: Dict[str, Any],
    conflict_keys: Sequence[str],
    update_fields: Sequence[str],
):
    '''
    Insert `values` or, when a row with the same conflict_keys exists, update
    only `update_fields` on it. Returns the resulting ORM row.

    :param model: mapped class with a unique constraint on conflict_keys
    :param values: full column values for the insert (must include the id)
    :param conflict_keys: columns of the unique constraint
    :param update_fields: columns overwritten on conflict
    '''
    dialect_name = db.get_bind().dialect.name
    insert = _dialect_insert(dialect_name)

    if insert is not None:
        stmt = insert(model).values(**values)
        update_values = {f: values[f] for f in update_fields}
        if hasattr(model, "updated_at"):
            update_values["updated_at"] = datetime.now()
        if dialect_name in ("mysql", "mariadb"):
            stmt = stmt.on_duplicate_key_update(**update_values)
        else:
            stmt = stmt.on_conflict_do_update(
                index_elements=list(conflict_keys),
                set_=update_values,
            )
        db.execute(stmt)
    else:
        _upsert_in_savepoint(db, model, values, conflict_keys, update_fields)

    # 读回结果行，populate_existing 覆盖 identity map 里的旧值
    key_filter = [getattr(model, k) == values[k] for k in conflict_keys]
    return db.execute(
        select(model).where(*key_filter).execution_options(populate_existing=True)
    ).scalar_one()


def _upsert_in_savepoint(db, model, values, conflict_keys, update_fields) -> None:
    key_filter = [getattr(model, k) == values[k] for k in conflict_keys]
    for attempt in (1, 2):
        try:
            with db.begin_nested():
                row = db.execute(select(model).where(*key_filter).with_for_update()).scalar_one_or_none()
                if row is None:
                    db.add(model(**values))
                else:
                    for f in update_fields:
                        setattr(row, f, values[f])
                db.flush()
            return
        except IntegrityError:
            if attempt == 2:
                raise
            logger.warning("Concurrent insert on %s, retrying as update", model.__tablename__)
