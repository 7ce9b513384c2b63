import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from shrinkwatch.data_handler import StateStore
from shrinkwatch.schemas import FilterState, Segment, ShrinkRecord


def record(**overrides):
    values = dict(
        id="imp-0-1",
        item_number="1001",
        item_name="Chips",
        inv_variance=-2,
        unit_cost=3.5,
        shrink_loss=7.0,
        market_name="Lobby",
        period="March",
    )
    values.update(overrides)
    return ShrinkRecord(**values)


class StateStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self._tmp.name)
        self.store = StateStore(self.directory, version="v5")

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_state_loads_defaults(self):
        self.assertEqual(self.store.load_records(), [])
        self.assertEqual(self.store.load_filter(), FilterState())

    def test_saved_state_reloads(self):
        filter_state = FilterState(months={"March", "April"}, market="Lobby", segment=Segment.COLD)
        self.assertTrue(self.store.save([record()], filter_state))

        reloaded = StateStore(self.directory, version="v5")
        self.assertEqual(reloaded.load_records(), [record()])
        self.assertEqual(reloaded.load_filter(), filter_state)

    def test_records_are_stored_with_camel_case_keys(self):
        self.store.save([record()], FilterState())

        raw = json.loads(self.store.path("records").read_text(encoding="utf-8"))
        self.assertEqual(raw[0]["itemName"], "Chips")
        self.assertEqual(raw[0]["shrinkLoss"], 7.0)

    def test_other_versions_are_ignored(self):
        self.store.save([record()], FilterState(market="Lobby"))

        newer = StateStore(self.directory, version="v6")
        self.assertEqual(newer.load_records(), [])
        self.assertEqual(newer.load_filter().market, "All")

    def test_corrupt_slots_fail_soft(self):
        self.directory.mkdir(exist_ok=True)
        self.store.path("records").write_text("{not json", encoding="utf-8")
        self.store.path("months").write_text('{"a": 1}', encoding="utf-8")
        self.store.path("segment").write_text('"FROZEN"', encoding="utf-8")

        self.assertEqual(self.store.load_records(), [])
        self.assertEqual(self.store.load_filter(), FilterState())

    def test_undecodable_slot_fails_soft(self):
        self.directory.mkdir(exist_ok=True)
        self.store.path("records").write_bytes(b'[{"itemName": "\xff\xfe"}]')

        self.assertEqual(self.store.load_records(), [])

    def test_schema_mismatch_fails_soft(self):
        self.store.path("records").write_text('[{"itemName": "Chips"}]', encoding="utf-8")
        self.assertEqual(self.store.load_records(), [])

    def test_write_failure_is_reported_not_raised(self):
        with mock.patch("builtins.open", side_effect=OSError("quota exceeded")):
            self.assertFalse(self.store.save([record()], FilterState()))

    def test_clear_removes_every_slot(self):
        self.store.save([record()], FilterState(market="Lobby"))
        self.store.clear()

        self.assertEqual(list(self.directory.glob("*.json")), [])
        self.assertEqual(self.store.load_records(), [])


if __name__ == "__main__":
    unittest.main()
