"""Tests for record CRUD and the trash lifecycle."""

import itertools
import json

import pytest

from passvault.exceptions import (
    EmptyImportData,
    ImportLimitExceeded,
    InvalidImportData,
    NotFound,
    NotFoundInTrash,
    StoreUnavailable,
    ValidationError,
)
from passvault.services import vault_service
from passvault.services.record_store import data_key, trash_key
from passvault.services.vault_service import (
    add_record,
    empty_trash,
    export_records,
    import_records,
    list_records,
    list_trash,
    permanent_delete,
    restore,
    soft_delete,
    update_record,
)

GITHUB = {"platform": "github", "account": "me", "password": "p@ss"}


@pytest.fixture
def clock(monkeypatch):
    """Deterministic, strictly increasing millisecond clock."""
    ticks = itertools.count(1_700_000_000_000, 1000)
    monkeypatch.setattr(vault_service, "now_ms", lambda: next(ticks))


def ids(records):
    return [record["id"] for record in records]


def assert_disjoint(store, ctx):
    active = set(ids(list_records(store, ctx)))
    trashed = set(ids(list_trash(store, ctx)))
    assert not active & trashed


class TestAdd:
    def test_add_assigns_id_timestamps_and_default_category(self, store, ctx):
        record = add_record(store, ctx, GITHUB)

        assert record["id"]
        assert record["createdAt"] == record["updatedAt"]
        assert record["category"] == "general"
        assert record["remark"] == ""
        assert list_records(store, ctx) == [record]

    def test_fresh_id_per_record(self, store, ctx):
        first = add_record(store, ctx, GITHUB)
        second = add_record(store, ctx, GITHUB)
        assert first["id"] != second["id"]
        assert ids(list_records(store, ctx)) == [first["id"], second["id"]]

    @pytest.mark.parametrize("missing", ["platform", "account", "password"])
    def test_required_fields(self, store, ctx, missing):
        fields = {**GITHUB, missing: ""}
        with pytest.raises(ValidationError) as exc_info:
            add_record(store, ctx, fields)
        assert exc_info.value.code == "MISSING_FIELDS"
        assert list_records(store, ctx) == []

    def test_long_values_are_truncated_not_rejected(self, store, ctx):
        record = add_record(
            store,
            ctx,
            {
                "platform": "p" * 300,
                "account": "a" * 300,
                "password": "x" * 600,
                "remark": "r" * 1200,
                "category": "c" * 80,
            },
        )
        assert len(record["platform"]) == 200
        assert len(record["account"]) == 200
        assert len(record["password"]) == 500
        assert len(record["remark"]) == 1000
        assert len(record["category"]) == 50

    def test_caller_cannot_choose_id_or_timestamps(self, store, ctx, clock):
        record = add_record(store, ctx, {**GITHUB, "id": "mine", "createdAt": 1, "deletedAt": 2})
        assert record["id"] != "mine"
        assert record["createdAt"] != 1
        assert "deletedAt" not in record

    def test_non_string_field_is_rejected(self, store, ctx):
        with pytest.raises(ValidationError):
            add_record(store, ctx, {**GITHUB, "remark": {"nested": True}})


class TestUpdate:
    def test_merge_preserves_id_and_created_at(self, store, ctx, clock):
        record = add_record(store, ctx, GITHUB)

        updated = update_record(
            store, ctx, record["id"], {"password": "n3w", "id": "x", "createdAt": 5}
        )

        assert updated["id"] == record["id"]
        assert updated["createdAt"] == record["createdAt"]
        assert updated["password"] == "n3w"
        assert updated["account"] == "me"
        assert updated["updatedAt"] > record["updatedAt"]
        assert list_records(store, ctx) == [updated]

    def test_sequential_updates_last_one_wins(self, store, ctx, clock):
        record = add_record(store, ctx, GITHUB)

        first = update_record(store, ctx, record["id"], {"remark": "a"})
        second = update_record(store, ctx, record["id"], {"remark": "b"})

        [stored] = list_records(store, ctx)
        assert stored["remark"] == "b"
        assert stored["updatedAt"] == second["updatedAt"] > first["updatedAt"]

    def test_unknown_id(self, store, ctx):
        add_record(store, ctx, GITHUB)
        with pytest.raises(NotFound):
            update_record(store, ctx, "missing", {"remark": "x"})

    def test_patch_values_are_truncated(self, store, ctx):
        record = add_record(store, ctx, GITHUB)
        updated = update_record(store, ctx, record["id"], {"remark": "r" * 2000})
        assert len(updated["remark"]) == 1000


class TestTrashLifecycle:
    def test_soft_delete_moves_record_to_trash(self, store, ctx, clock):
        record = add_record(store, ctx, GITHUB)

        soft_delete(store, ctx, record["id"])

        assert list_records(store, ctx) == []
        [trashed] = list_trash(store, ctx)
        assert trashed["id"] == record["id"]
        assert trashed["deletedAt"] > record["updatedAt"]

    def test_soft_delete_then_restore_round_trip(self, store, ctx, clock):
        record = add_record(store, ctx, GITHUB)

        soft_delete(store, ctx, record["id"])
        restore(store, ctx, record["id"])

        assert list_records(store, ctx) == [record]
        assert list_trash(store, ctx) == []

    def test_soft_delete_unknown_id(self, store, ctx):
        with pytest.raises(NotFound):
            soft_delete(store, ctx, "missing")

    def test_restore_requires_record_in_trash(self, store, ctx):
        record = add_record(store, ctx, GITHUB)
        with pytest.raises(NotFoundInTrash):
            restore(store, ctx, record["id"])

    def test_restore_appends_to_end(self, store, ctx):
        first = add_record(store, ctx, GITHUB)
        second = add_record(store, ctx, GITHUB)

        soft_delete(store, ctx, first["id"])
        restore(store, ctx, first["id"])

        assert ids(list_records(store, ctx)) == [second["id"], first["id"]]

    def test_permanent_delete_removes_from_trash(self, store, ctx):
        keep = add_record(store, ctx, GITHUB)
        gone = add_record(store, ctx, GITHUB)
        soft_delete(store, ctx, keep["id"])
        soft_delete(store, ctx, gone["id"])

        permanent_delete(store, ctx, gone["id"])

        assert ids(list_trash(store, ctx)) == [keep["id"]]

    def test_permanent_delete_of_active_record_is_not_found(self, store, ctx):
        record = add_record(store, ctx, GITHUB)
        before = list_records(store, ctx)

        with pytest.raises(NotFound):
            permanent_delete(store, ctx, record["id"])

        assert list_records(store, ctx) == before

    def test_empty_trash_then_restore(self, store, ctx, kv):
        record = add_record(store, ctx, GITHUB)
        soft_delete(store, ctx, record["id"])

        empty_trash(store, ctx)

        assert kv.get(trash_key(ctx.username)) is None
        with pytest.raises(NotFoundInTrash):
            restore(store, ctx, record["id"])

    def test_empty_trash_without_trash(self, store, ctx):
        empty_trash(store, ctx)
        assert list_trash(store, ctx) == []

    def test_lists_stay_disjoint(self, store, ctx):
        records = [add_record(store, ctx, GITHUB) for _ in range(4)]
        a, b, c, d = ids(records)

        for operation, record_id in [
            (soft_delete, a),
            (soft_delete, b),
            (restore, a),
            (soft_delete, c),
            (permanent_delete, b),
            (soft_delete, a),
            (restore, c),
            (soft_delete, d),
        ]:
            operation(store, ctx, record_id)
            assert_disjoint(store, ctx)

        assert set(ids(list_records(store, ctx))) == {c}
        assert set(ids(list_trash(store, ctx))) == {a, d}

    def test_interrupted_move_is_repaired_by_retry(self, store, ctx, kv, monkeypatch):
        record = add_record(store, ctx, GITHUB)

        # Fail the second write of the move: the trash write lands, the active write does not
        original_save = store.save
        calls = []

        def failing_save(key, items, secret, salt):
            calls.append(key)
            if key == data_key(ctx.username):
                raise StoreUnavailable("down")
            original_save(key, items, secret, salt)

        monkeypatch.setattr(store, "save", failing_save)
        with pytest.raises(StoreUnavailable):
            soft_delete(store, ctx, record["id"])
        monkeypatch.setattr(store, "save", original_save)

        # Duplicated, never lost
        assert calls == [trash_key(ctx.username), data_key(ctx.username)]
        assert ids(list_records(store, ctx)) == [record["id"]]
        assert ids(list_trash(store, ctx)) == [record["id"]]

        soft_delete(store, ctx, record["id"])

        assert list_records(store, ctx) == []
        assert ids(list_trash(store, ctx)) == [record["id"]]


class TestImport:
    def test_import_appends_in_order_with_fresh_ids(self, store, ctx):
        existing = add_record(store, ctx, GITHUB)
        items = [
            {"platform": "one", "account": "a", "password": "1", "id": "ignored"},
            {"platform": "two"},
        ]

        assert import_records(store, ctx, items) == 2

        records = list_records(store, ctx)
        assert [r["platform"] for r in records] == ["github", "one", "two"]
        assert records[0] == existing
        assert records[1]["id"] != "ignored"
        assert records[2]["account"] == ""
        assert records[2]["category"] == "general"
        assert records[1]["createdAt"] == records[1]["updatedAt"]

    def test_import_writes_once(self, store, ctx, monkeypatch):
        saves = []
        original_save = store.save
        monkeypatch.setattr(
            store, "save", lambda *args: saves.append(args[0]) or original_save(*args)
        )

        import_records(store, ctx, [GITHUB] * 25)

        assert saves == [data_key(ctx.username)]

    def test_import_truncates(self, store, ctx):
        import_records(store, ctx, [{"platform": "p" * 500}])
        assert len(list_records(store, ctx)[0]["platform"]) == 200

    @pytest.mark.parametrize("data", [None, "text", {"platform": "x"}, 3])
    def test_non_list_rejected(self, store, ctx, data):
        with pytest.raises(InvalidImportData):
            import_records(store, ctx, data)

    def test_non_object_item_rejected(self, store, ctx):
        with pytest.raises(InvalidImportData):
            import_records(store, ctx, [GITHUB, "oops"])
        assert list_records(store, ctx) == []

    def test_empty_rejected(self, store, ctx):
        with pytest.raises(EmptyImportData):
            import_records(store, ctx, [])

    def test_limit_is_inclusive(self, store, ctx):
        assert import_records(store, ctx, [GITHUB] * 1000) == 1000

    def test_over_limit_rejected_without_state_change(self, store, ctx, kv):
        add_record(store, ctx, GITHUB)
        before = kv.get(data_key(ctx.username))

        with pytest.raises(ImportLimitExceeded):
            import_records(store, ctx, [GITHUB] * 1001)

        assert kv.get(data_key(ctx.username)) == before


class TestExport:
    def test_export_strips_bookkeeping_fields(self, store, ctx):
        add_record(store, ctx, {**GITHUB, "remark": "main"})

        assert export_records(store, ctx) == [
            {
                "platform": "github",
                "account": "me",
                "password": "p@ss",
                "remark": "main",
                "category": "general",
            }
        ]

    def test_export_excludes_trash(self, store, ctx):
        record = add_record(store, ctx, GITHUB)
        add_record(store, ctx, {**GITHUB, "platform": "kept"})
        soft_delete(store, ctx, record["id"])

        assert [item["platform"] for item in export_records(store, ctx)] == ["kept"]

    def test_export_then_import_recreates_records(self, store, ctx):
        add_record(store, ctx, GITHUB)
        exported = export_records(store, ctx)

        import_records(store, ctx, exported)

        records = list_records(store, ctx)
        assert len(records) == 2
        assert records[0]["id"] != records[1]["id"]


class TestLegacyData:
    def test_operations_work_on_legacy_list_and_upgrade_it(self, store, ctx, kv):
        legacy = [{"id": "old-1", "platform": "legacy", "account": "a", "password": "p"}]
        kv.put(data_key(ctx.username), json.dumps(legacy))

        assert list_records(store, ctx) == legacy

        update_record(store, ctx, "old-1", {"remark": "migrated"})

        stored = json.loads(kv.get(data_key(ctx.username)))
        assert set(stored) == {"iv", "data"}
        assert list_records(store, ctx)[0]["remark"] == "migrated"
