"""Tests for the JSON-file table repository.

Covers file layout, tolerant reads, atomic writes, name validation and
per-table serialization of concurrent mutations.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from rowstore.exceptions import InvalidTableNameError, TableFileError
from rowstore.storage.json_files import (
    JsonTableRepository,
    load_table_file,
    read_table_file,
    safe_table_name,
    write_table_file,
)
from rowstore.storage.locks import LockRegistry
from tests.conftest import run


class TestTableNames:
    @pytest.mark.parametrize(
        "raw,expected",
        [("stories", "stories"), ("  Stories ", "stories"), ("my-table_2", "my-table_2")],
    )
    def test_safe_table_name(self, raw, expected):
        assert safe_table_name(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "!!!", None, "../x", "a.b", "Bad Name!"])
    def test_invalid(self, raw):
        with pytest.raises(InvalidTableNameError):
            safe_table_name(raw)

    def test_table_path(self, json_repo, data_dir):
        assert json_repo.table_path("Stories") == data_dir / "table-stories.json"

    def test_invalid_name_touches_nothing(self, json_repo, data_dir):
        with pytest.raises(InvalidTableNameError):
            run(json_repo.insert_rows("Bad Name!", {"id": 1}))
        assert list(data_dir.iterdir()) == []


class TestTableFile:
    def test_missing_file_is_empty(self, tmp_path):
        assert read_table_file(tmp_path / "nope.json") == []

    def test_strips_bom(self, tmp_path):
        path = tmp_path / "t.json"
        path.write_text("\ufeff" + json.dumps({"rows": [{"a": 1}]}), encoding="utf-8")
        assert read_table_file(path) == [{"a": 1}]

    @pytest.mark.parametrize("content", ["{not json", "[]", '{"rows": 3}', '"x"', "{}"])
    def test_malformed_is_empty(self, tmp_path, content):
        path = tmp_path / "t.json"
        path.write_text(content, encoding="utf-8")
        assert read_table_file(path) == []

    def test_non_object_rows_are_skipped(self, tmp_path):
        path = tmp_path / "t.json"
        path.write_text('{"rows": [{"a": 1}, 2, "x", null, {"b": 2}]}', encoding="utf-8")
        assert read_table_file(path) == [{"a": 1}, {"b": 2}]

    @pytest.mark.parametrize("content", ["{not json", "[]", '{"rows": 3}', "{}"])
    def test_strict_load_rejects_malformed(self, tmp_path, content):
        path = tmp_path / "t.json"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(TableFileError) as excinfo:
            load_table_file(path)
        assert excinfo.value.path == path

    def test_strict_load_missing_file_is_empty(self, tmp_path):
        assert load_table_file(tmp_path / "nope.json") == []

    def test_write_is_pretty_and_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / "nested" / "t.json"
        write_table_file(path, [{"t": "é"}])
        text = path.read_text(encoding="utf-8")
        assert text == json.dumps({"rows": [{"t": "é"}]}, indent=2, ensure_ascii=False)
        assert [p.name for p in path.parent.iterdir()] == ["t.json"]


class TestOperations:
    def test_insert_and_list(self, json_repo, data_dir):
        inserted = run(json_repo.insert_rows("stories", [{"id": "1"}, {"id": "2"}]))
        assert inserted == [{"id": "1"}, {"id": "2"}]
        assert run(json_repo.list_rows("stories")) == inserted
        on_disk = json.loads((data_dir / "table-stories.json").read_text(encoding="utf-8"))
        assert on_disk == {"rows": inserted}

    def test_list_missing_table(self, json_repo, data_dir):
        assert run(json_repo.list_rows("ghost")) == []
        assert run(json_repo.list_rows("ghost", single=True)) is None
        assert not (data_dir / "table-ghost.json").exists()

    def test_malformed_file_is_overwritten_on_write(self, json_repo, data_dir):
        (data_dir / "table-t.json").write_text("garbage", encoding="utf-8")
        run(json_repo.insert_rows("t", {"id": 1}))
        assert run(json_repo.list_rows("t")) == [{"id": 1}]

    def test_update_returns_merged_rows(self, json_repo):
        run(json_repo.insert_rows("t", [{"id": 1, "s": "a"}, {"id": 2, "s": "a"}]))
        updated = run(json_repo.update_rows("t", {"s": "b"}, [{"column": "id", "op": "eq", "value": 2}]))
        assert updated == [{"id": 2, "s": "b"}]
        assert run(json_repo.list_rows("t")) == [{"id": 1, "s": "a"}, {"id": 2, "s": "b"}]

    def test_update_without_filters_touches_all(self, json_repo):
        run(json_repo.insert_rows("t", [{"id": 1}, {"id": 2}]))
        assert run(json_repo.update_rows("t", {"x": True})) == [{"id": 1, "x": True}, {"id": 2, "x": True}]

    def test_delete(self, json_repo):
        run(json_repo.insert_rows("t", [{"id": 1}, {"id": 2}, {"id": 3}]))
        removed = run(json_repo.delete_rows("t", [{"column": "id", "op": "neq", "value": 2}]))
        assert removed == [{"id": 1}, {"id": 3}]
        assert run(json_repo.list_rows("t")) == [{"id": 2}]

    def test_list_tables(self, json_repo, data_dir):
        run(json_repo.insert_rows("b", {}))
        run(json_repo.insert_rows("a", {}))
        (data_dir / "other.json").write_text("{}", encoding="utf-8")
        assert json_repo.list_tables() == ["a", "b"]

    def test_list_tables_missing_dir(self, tmp_path):
        assert JsonTableRepository(tmp_path / "nope").list_tables() == []

    def test_ensure_table(self, json_repo, data_dir):
        assert run(json_repo.ensure_table("t")) is True
        assert run(json_repo.ensure_table("t")) is False
        assert json.loads((data_dir / "table-t.json").read_text(encoding="utf-8")) == {"rows": []}

    def test_ensure_table_repairs_malformed(self, json_repo, data_dir):
        (data_dir / "table-t.json").write_text("{oops", encoding="utf-8")
        assert run(json_repo.ensure_table("t")) is True
        assert run(json_repo.list_rows("t")) == []

    def test_ensure_table_keeps_rows(self, json_repo):
        run(json_repo.insert_rows("t", {"id": 1}))
        assert run(json_repo.ensure_table("t")) is False
        assert run(json_repo.list_rows("t")) == [{"id": 1}]


class TestConcurrency:
    def test_concurrent_inserts_keep_every_row(self, json_repo):
        async def scenario():
            await asyncio.gather(*(json_repo.insert_rows("t", {"n": i}) for i in range(40)))
            return await json_repo.list_rows("t")

        rows = run(scenario())
        assert sorted(r["n"] for r in rows) == list(range(40))
        assert len(json_repo.locks) == 0

    def test_mutations_apply_in_arrival_order(self, json_repo):
        async def scenario():
            await asyncio.gather(
                json_repo.insert_rows("t", {"id": 1, "v": 0}),
                json_repo.update_rows("t", {"v": 1}),
                json_repo.upsert_rows("t", {"id": 1, "w": 2}),
                json_repo.delete_rows("t", [{"column": "w", "op": "eq", "value": 3}]),
            )
            return await json_repo.list_rows("t")

        assert run(scenario()) == [{"id": 1, "v": 1, "w": 2}]

    def test_name_variants_share_a_lock(self, data_dir):
        async def scenario():
            repo = JsonTableRepository(data_dir, locks=LockRegistry())
            await asyncio.gather(
                *(repo.insert_rows(name, {"i": i}) for i, name in enumerate(["T", "t", " t ", "t "] * 5))
            )
            return await repo.list_rows("t")

        assert len(run(scenario())) == 20

    def test_separate_repositories_share_the_default_registry(self, data_dir):
        async def scenario():
            first = JsonTableRepository(data_dir)
            second = JsonTableRepository(str(data_dir))
            assert first.locks is second.locks
            await asyncio.gather(
                *((first if i % 2 else second).insert_rows("t", {"n": i}) for i in range(20))
            )
            return await first.list_rows("t")

        rows = run(scenario())
        assert sorted(r["n"] for r in rows) == list(range(20))
