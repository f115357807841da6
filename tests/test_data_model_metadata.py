from __future__ import annotations

from xpduel.db.models import StoreRecord  # noqa: F401
from xpduel.db.models.base import Base


def test_store_records_table_registered() -> None:
    assert "store_records" in set(Base.metadata.tables)


def test_store_records_columns_and_indexes() -> None:
    store_records = Base.metadata.tables["store_records"]
    assert [column.name for column in store_records.primary_key.columns] == ["key"]
    assert {"key", "value", "updated_at"} == set(store_records.columns.keys())
    assert store_records.columns["value"].nullable is False

    index_names = {index.name for index in store_records.indexes}
    assert "idx_store_records_updated_at" in index_names
