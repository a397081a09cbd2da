import unittest
from unittest import mock

from google.auth.exceptions import RefreshError
from gspread.exceptions import GSpreadException, WorksheetNotFound

from fitness_store import (
    COLLECTIONS,
    MemoryStore,
    NotFoundError,
    SheetStore,
    StoreError,
    decode_cell,
    encode_cell,
)


class FakeWorksheet:
    """Just enough of gspread.Worksheet for SheetStore."""

    def __init__(self, title, rows=None):
        self.title = title
        self.rows = [list(r) for r in (rows or [])]

    def get_all_values(self):
        return [[str(c) for c in r] for r in self.rows]

    def append_row(self, values):
        self.rows.append(list(values))

    def append_rows(self, values):
        for row in values:
            self.append_row(row)

    def update(self, range_name=None, values=None):
        row_number = int(range_name[1:])
        self.rows[row_number - 1] = list(values[0])

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSpreadsheet:
    def __init__(self, sheets=None):
        self.sheets = {ws.title: ws for ws in (sheets or [])}

    def worksheets(self):
        return list(self.sheets.values())

    def worksheet(self, title):
        if title not in self.sheets:
            raise WorksheetNotFound(title)
        return self.sheets[title]

    def add_worksheet(self, title, rows, cols):
        ws = FakeWorksheet(title)
        self.sheets[title] = ws
        return ws


class MemoryStoreQueryTest(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryStore({
            "workouts": [
                {"id": "w1", "name": "Legs", "date": "2026-10-01", "created_at": "2026-10-01T08:00:00"},
                {"id": "w2", "name": "Arms", "date": "2026-10-03", "created_at": "2026-10-03T08:00:00"},
                {"id": "w3", "name": "Core", "date": None, "created_at": "2026-10-02T08:00:00"},
            ],
        })

    def test_order_ascending_puts_nulls_last(self) -> None:
        rows = self.store.select("workouts", order_by="date")
        self.assertEqual([r["id"] for r in rows], ["w1", "w2", "w3"])

    def test_order_descending_puts_nulls_first(self) -> None:
        rows = self.store.select("workouts", order_by="date", ascending=False)
        self.assertEqual([r["id"] for r in rows], ["w3", "w2", "w1"])

    def test_limit_applies_after_ordering(self) -> None:
        rows = self.store.select("workouts", order_by="created_at", ascending=False, limit=2)
        self.assertEqual([r["id"] for r in rows], ["w2", "w3"])

    def test_column_limited_select(self) -> None:
        rows = self.store.select("workouts", columns=["id", "name"], eq={"id": "w1"})
        self.assertEqual(rows, [{"id": "w1", "name": "Legs"}])

    def test_unknown_column_is_store_error(self) -> None:
        with self.assertRaises(StoreError) as ctx:
            self.store.select("workouts", columns=["id", "mood"])
        self.assertIn("mood", str(ctx.exception))

    def test_unknown_table_is_store_error(self) -> None:
        with self.assertRaises(StoreError):
            self.store.select("meals")

    def test_single_row_mode(self) -> None:
        row = self.store.select("workouts", eq={"id": "w2"}, single=True)
        self.assertEqual(row["name"], "Arms")

    def test_single_row_missing_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.store.select("workouts", eq={"id": "nope"}, single=True)

    def test_single_row_with_many_matches_is_store_error(self) -> None:
        with self.assertRaises(StoreError) as ctx:
            self.store.select("workouts", single=True)
        self.assertNotIsInstance(ctx.exception, NotFoundError)

    def test_returned_rows_are_copies(self) -> None:
        rows = self.store.select("workouts", eq={"id": "w1"})
        rows[0]["name"] = "changed"
        self.assertEqual(self.store.select("workouts", eq={"id": "w1"}, single=True)["name"], "Legs")


class MemoryStoreMutationTest(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryStore()

    def test_insert_assigns_id_and_created_at(self) -> None:
        record = self.store.insert("exercises", {"name": "Squat"})
        self.assertTrue(record["id"])
        self.assertTrue(record["created_at"])
        self.assertIsNone(record["muscle_group"])
        self.assertEqual(self.store.select("exercises"), [record])

    def test_batch_insert_returns_list(self) -> None:
        records = self.store.insert("exercises", [{"name": "Squat"}, {"name": "Lunge"}])
        self.assertEqual([r["name"] for r in records], ["Squat", "Lunge"])
        self.assertEqual(len({r["id"] for r in records}), 2)

    def test_update_patches_only_given_columns(self) -> None:
        record = self.store.insert("exercises", {"name": "Squat", "muscle_group": "Legs"})
        updated = self.store.update("exercises", {"name": "Back Squat"}, eq={"id": record["id"]})
        self.assertEqual(len(updated), 1)
        row = self.store.select("exercises", single=True)
        self.assertEqual(row["name"], "Back Squat")
        self.assertEqual(row["muscle_group"], "Legs")
        self.assertEqual(row["created_at"], record["created_at"])

    def test_upsert_same_date_keeps_one_record_with_second_write(self) -> None:
        first = self.store.upsert("daily_logs", {"date": "2026-10-19", "completed": True, "notes": "first"},
                                  on_conflict="date")
        self.store.upsert("daily_logs", {"date": "2026-10-19", "completed": False, "notes": "second"},
                          on_conflict="date")
        rows = self.store.select("daily_logs")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["notes"], "second")
        self.assertFalse(rows[0]["completed"])
        self.assertEqual(rows[0]["id"], first["id"])
        self.assertEqual(rows[0]["created_at"], first["created_at"])

    def test_upsert_replaces_instead_of_merging(self) -> None:
        self.store.upsert("daily_logs", {"date": "2026-10-19", "completed": True, "notes": "first"},
                          on_conflict="date")
        self.store.upsert("daily_logs", {"date": "2026-10-19", "completed": True}, on_conflict="date")
        self.assertIsNone(self.store.select("daily_logs", single=True)["notes"])

    def test_upsert_different_dates_inserts(self) -> None:
        self.store.upsert("daily_logs", {"date": "2026-10-18", "completed": True}, on_conflict="date")
        self.store.upsert("daily_logs", {"date": "2026-10-19", "completed": True}, on_conflict="date")
        self.assertEqual(len(self.store.select("daily_logs")), 2)

    def test_duplicate_date_insert_violates_unique_constraint(self) -> None:
        self.store.insert("daily_logs", {"date": "2026-10-19", "completed": True})
        with self.assertRaises(StoreError) as ctx:
            self.store.insert("daily_logs", {"date": "2026-10-19", "completed": True})
        self.assertIn("unique", str(ctx.exception))

    def test_delete_workout_cascades_to_its_exercises_only(self) -> None:
        squat = self.store.insert("exercises", {"name": "Squat"})
        legs = self.store.insert("workouts", {"name": "Legs", "date": "2026-10-18"})
        arms = self.store.insert("workouts", {"name": "Arms", "date": "2026-10-19"})
        self.store.insert("workout_exercises", [
            {"workout_id": legs["id"], "exercise_id": squat["id"], "sets": 3},
            {"workout_id": arms["id"], "exercise_id": squat["id"], "sets": 2},
        ])

        removed = self.store.delete("workouts", {"id": legs["id"]})

        self.assertEqual(removed, 1)
        self.assertEqual([w["id"] for w in self.store.select("workouts")], [arms["id"]])
        remaining = self.store.select("workout_exercises")
        self.assertEqual([r["workout_id"] for r in remaining], [arms["id"]])
        self.assertEqual(self.store.select("exercises"), [squat])

    def test_delete_missing_id_removes_nothing(self) -> None:
        self.store.insert("exercises", {"name": "Squat"})
        self.assertEqual(self.store.delete("exercises", {"id": "missing"}), 0)
        self.assertEqual(len(self.store.select("exercises")), 1)


class CellCodecTest(unittest.TestCase):
    def test_encode(self) -> None:
        self.assertEqual(encode_cell(None), "")
        self.assertEqual(encode_cell(True), "TRUE")
        self.assertEqual(encode_cell(3), 3)

    def test_decode(self) -> None:
        self.assertIsNone(decode_cell("", str))
        self.assertIsNone(decode_cell("  ", int))
        self.assertEqual(decode_cell("3", int), 3)
        self.assertEqual(decode_cell("2.5", float), 2.5)
        self.assertTrue(decode_cell("TRUE", bool))
        self.assertFalse(decode_cell("FALSE", bool))
        self.assertIsNone(decode_cell("lots", int))
        self.assertEqual(decode_cell("0012", str), "0012")


class SheetStoreTest(unittest.TestCase):
    def setUp(self) -> None:
        self.spreadsheet = FakeSpreadsheet()
        self.store = SheetStore(self.spreadsheet)
        self.store.ensure_schema()

    def test_ensure_schema_creates_tabs_with_headers(self) -> None:
        self.assertEqual(set(self.spreadsheet.sheets), set(COLLECTIONS))
        for table, schema in COLLECTIONS.items():
            self.assertEqual(self.spreadsheet.sheets[table].rows, [list(schema)])

    def test_ensure_schema_keeps_existing_tabs(self) -> None:
        ws = self.spreadsheet.sheets["exercises"]
        ws.append_row(["e1", "Squat", "", "", "", "", "", "2026-10-19"])
        SheetStore(self.spreadsheet).ensure_schema()
        self.assertEqual(len(ws.rows), 2)

    def test_round_trip_decodes_column_types(self) -> None:
        item = self.store.insert("workout_exercises", {
            "workout_id": "w1", "exercise_id": "e1", "sets": 3, "weight_kg": 42.5,
        })
        row = self.store.select("workout_exercises", single=True)
        self.assertEqual(row["id"], item["id"])
        self.assertEqual(row["sets"], 3)
        self.assertEqual(row["weight_kg"], 42.5)
        self.assertIsNone(row["reps"])
        self.assertIsNone(row["notes"])

    def test_booleans_survive_the_sheet(self) -> None:
        self.store.upsert("daily_logs", {"date": "2026-10-19", "completed": True}, on_conflict="date")
        self.assertEqual(self.spreadsheet.sheets["daily_logs"].rows[1][2], "TRUE")
        self.assertIs(self.store.select("daily_logs", single=True)["completed"], True)

    def test_upsert_rewrites_the_matching_row(self) -> None:
        self.store.upsert("daily_logs", {"date": "2026-10-18", "completed": True, "notes": "a"}, on_conflict="date")
        self.store.upsert("daily_logs", {"date": "2026-10-19", "completed": True, "notes": "b"}, on_conflict="date")
        self.store.upsert("daily_logs", {"date": "2026-10-19", "completed": True, "notes": "c"}, on_conflict="date")
        rows = self.store.select("daily_logs", order_by="date")
        self.assertEqual([r["notes"] for r in rows], ["a", "c"])
        self.assertEqual(len(self.spreadsheet.sheets["daily_logs"].rows), 3)

    def test_delete_removes_sheet_rows(self) -> None:
        a = self.store.insert("exercises", {"name": "A"})
        self.store.insert("exercises", {"name": "B"})
        self.store.delete("exercises", {"id": a["id"]})
        self.assertEqual([r["name"] for r in self.store.select("exercises")], ["B"])

    def test_short_rows_are_padded(self) -> None:
        self.spreadsheet.sheets["workouts"].append_row(["w1", "Legs", "2026-10-19"])
        row = self.store.select("workouts", single=True)
        self.assertIsNone(row["notes"])
        self.assertIsNone(row["created_at"])

    def test_missing_header_column_fails_column_select(self) -> None:
        self.spreadsheet.sheets["exercises"].rows[0] = ["id", "name", "created_at"]
        with self.assertRaises(StoreError):
            self.store.select("exercises", columns=["id", "name", "video_url"])

    def test_missing_worksheet_is_store_error(self) -> None:
        store = SheetStore(FakeSpreadsheet())
        with self.assertRaises(StoreError):
            store.select("workouts")

    def test_gspread_errors_become_store_errors(self) -> None:
        ws = mock.MagicMock()
        ws.get_all_values.side_effect = GSpreadException("quota exceeded")
        spreadsheet = mock.MagicMock()
        spreadsheet.worksheet.return_value = ws
        with self.assertRaises(StoreError) as ctx:
            SheetStore(spreadsheet).select("workouts")
        self.assertIn("quota exceeded", str(ctx.exception))

    def test_network_errors_become_store_errors(self) -> None:
        ws = mock.MagicMock()
        ws.get_all_values.side_effect = ConnectionError("connection reset")
        spreadsheet = mock.MagicMock()
        spreadsheet.worksheet.return_value = ws
        with self.assertRaises(StoreError) as ctx:
            SheetStore(spreadsheet).select("workouts")
        self.assertIn("connection reset", str(ctx.exception))

    def test_auth_errors_become_store_errors(self) -> None:
        ws = mock.MagicMock()
        ws.get_all_values.side_effect = RefreshError("invalid_grant: Invalid JWT Signature.")
        spreadsheet = mock.MagicMock()
        spreadsheet.worksheet.return_value = ws
        with self.assertRaises(StoreError) as ctx:
            SheetStore(spreadsheet).select("workouts")
        self.assertIn("invalid_grant", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
