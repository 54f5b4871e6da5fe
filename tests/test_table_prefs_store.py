import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from draft_store import DraftStore
from kv_storage import MemoryKeyValueStorage, StorageError
from table_prefs_store import TablePreferenceStore, validate_preferences


class ReadOnlyStorage(MemoryKeyValueStorage):
    def set(self, key: str, value: str) -> None:
        raise StorageError("STORAGE_FAILED", "read only", key)


class TestTablePreferenceStore(unittest.TestCase):
    def setUp(self) -> None:
        self.storage = MemoryKeyValueStorage()
        self.store = TablePreferenceStore(self.storage)

    def test_save_merges_partial_updates(self) -> None:
        self.store.save("employees", {"visible_columns": ["fullName", "status"]})
        self.store.save("employees", {"page_size": 20})
        prefs = self.store.load("employees")
        self.assertEqual(prefs, {"visible_columns": ["fullName", "status"], "page_size": 20})

    def test_tables_are_independent(self) -> None:
        self.store.save("employees", {"page_size": 20})
        self.store.save("vendors", {"sort_field": "legalName", "sort_direction": "ascend"})
        self.store.clear("employees")
        self.assertIsNone(self.store.load("employees"))
        self.assertEqual(self.store.load("vendors")["sort_field"], "legalName")

    def test_single_aggregate_entry(self) -> None:
        self.store.save("employees", {"page_size": 20})
        self.store.save("vendors", {"page_size": 50})
        self.assertEqual(self.storage.keys(), ["tableprefs_all"])

    def test_clear_unknown_table_is_noop(self) -> None:
        self.assertTrue(self.store.clear("missing")["ok"])

    def test_corrupt_map_reads_as_empty(self) -> None:
        self.storage.set("tableprefs_all", "[broken")
        self.assertIsNone(self.store.load("employees"))
        self.assertEqual(self.store.load_all(), {})

    def test_write_failure_is_reported_not_raised(self) -> None:
        store = TablePreferenceStore(ReadOnlyStorage())
        with self.assertLogs("pharma.storage", level="WARNING"):
            result = store.save("employees", {"page_size": 20})
        self.assertFalse(result["ok"])
        self.assertIsNone(store.load("employees"))

    def test_draft_clear_all_keeps_table_prefs(self) -> None:
        drafts = DraftStore(self.storage)
        drafts.save("department_create", {"name": "QC"})
        self.store.save("employees", {"page_size": 20})
        drafts.clear_all()
        self.assertEqual(self.store.load("employees"), {"page_size": 20})

    def test_validate_preferences(self) -> None:
        self.assertEqual(validate_preferences({"page_size": 10, "column_widths": {"name": 120}}), [])
        codes = {e["code"] for e in validate_preferences({"sort_direction": "up", "color": "red", "page_size": 0})}
        self.assertEqual(codes, {"INVALID_ENUM", "UNKNOWN_FIELD", "TYPE_MISMATCH"})


if __name__ == "__main__":
    unittest.main()
