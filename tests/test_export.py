from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from openpyxl import load_workbook

from plan_doctor.export import format_csv_value, plan_to_csv, plan_to_rows, write_preview_workbook
from plan_doctor.importer import import_plan_text
from plan_doctor.reconcile import reconcile
from plan_doctor.schemas import default_document
from plan_doctor.tokenizer import parse_table_text


class CsvExportTests(unittest.TestCase):
    def test_format_csv_value(self):
        self.assertEqual(format_csv_value(None), "")
        self.assertEqual(format_csv_value("plain"), "plain")
        self.assertEqual(format_csv_value("a,b"), '"a,b"')
        self.assertEqual(format_csv_value('say "hi"'), '"say ""hi"""')
        self.assertEqual(format_csv_value("two\nlines"), '"two\nlines"')
        self.assertEqual(format_csv_value("a,b", delimiter=";"), "a,b")

    def test_plan_rows_use_column_labels(self):
        headers, rows = plan_to_rows("daily", default_document("daily"))
        self.assertEqual(headers, ["Stage", "Method", "Teacher Actions", "Student Actions", "Assessment"])
        self.assertEqual(rows[0], ["Engage", "5E", "", "", ""])

    def test_extra_record_keys_are_appended(self):
        document = {"rows": [{"day": "Monday", "focus": "x", "homework": "p. 4"}]}
        headers, rows = plan_to_rows("weekly", document)
        self.assertEqual(headers, ["Day", "Focus", "Language Target", "Assessment", "homework"])
        self.assertEqual(rows, [["Monday", "x", "", "", "p. 4"]])

    def test_plan_to_csv_quotes_values(self):
        document = default_document("weekly")
        document["rows"][0]["focus"] = "Verbs, review"
        lines = plan_to_csv("weekly", document).splitlines()
        self.assertEqual(lines[0], "Day,Focus,Language Target,Assessment")
        self.assertEqual(lines[1], 'Monday,"Verbs, review",,')

    def test_exported_csv_reimports_by_label(self):
        source = default_document("monthly")
        source["rows"][2]["focus"] = 'Menu "specials", prices'
        source["rows"][2]["assessment"] = "Role play"

        result = reconcile("monthly", default_document("monthly"), parse_table_text(plan_to_csv("monthly", source)))

        self.assertTrue(result.matched)
        self.assertEqual(result.data["rows"], source["rows"])


class WorkbookExportTests(unittest.TestCase):
    def test_replaced_plan_has_only_plan_sheet(self):
        outcome = import_plan_text("weekly", default_document("weekly"), "Day,Focus\nMonday,Verbs")
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_preview_workbook(Path(tmpdir) / "out" / "plan.xlsx", outcome)
            wb = load_workbook(path)
            self.assertEqual(wb.sheetnames, ["Plan"])
            ws = wb["Plan"]
            self.assertEqual(ws["A1"].value, "Day")
            self.assertEqual(ws["B2"].value, "Verbs")
            self.assertEqual(ws.freeze_panes, "A2")
            self.assertEqual(ws["C2"].fill.fgColor.rgb[-6:], "FCE4D6")

    def test_raw_preview_sheet(self):
        outcome = import_plan_text("weekly", default_document("weekly"), "Notes,Comments\n,x y\n")
        outcome_empty = import_plan_text("weekly", default_document("weekly"), "Notes,Comments\n,\n")
        self.assertIsNone(outcome.matrix)
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_preview_workbook(Path(tmpdir) / "preview.xlsx", outcome_empty)
            wb = load_workbook(path)
            self.assertEqual(wb.sheetnames, ["Plan", "Raw Preview"])
            raw = wb["Raw Preview"]
            self.assertEqual(raw["A1"].value, "Column 1")
            self.assertEqual(raw["A2"].value, "Notes")
            self.assertEqual(raw["B2"].value, "Comments")


if __name__ == "__main__":
    unittest.main()
