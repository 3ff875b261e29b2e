from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from plan_doctor import __version__

ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "plan_doctor.cli"]
FIXED_STAMP = "20260301T010203Z"


def run_cli(
    *args: str,
    env: dict[str, str] | None = None,
    cwd: Path = ROOT,
    stdin: str | None = None,
) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env["PLAN_DOCTOR_OUTPUT_STAMP"] = FIXED_STAMP
    merged_env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), merged_env.get("PYTHONPATH")]))
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        input=stdin,
        env=merged_env,
    )


class PlanDoctorImportCliTests(unittest.TestCase):
    def test_matched_import_writes_plan_and_summary(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("import", "sample-data/weekly_paste.csv", "--period", "weekly", "--out", tmpdir)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Status: matched", proc.stderr)
            self.assertIn("Plan:", proc.stderr)

            plan = json.loads((Path(tmpdir) / "plan.json").read_text())
            days = {row["day"]: row for row in plan["rows"]}
            self.assertEqual(days["Monday"]["focus"], "Intro to verbs")
            self.assertEqual(days["Monday"]["languageTarget"], "Present simple")
            self.assertEqual(days["Wednesday"]["focus"], "Verbs, review")
            self.assertEqual(days["Tuesday"]["focus"], "")
            self.assertNotIn("Sunday", days)

            summary = json.loads((Path(tmpdir) / "import-summary.json").read_text())
            self.assertEqual(summary["contract"]["name"], "plan_doctor.import")
            self.assertEqual(summary["status"], "matched")
            self.assertEqual(summary["match_count"], 2)
            self.assertEqual(summary["run_summary"]["status"], "matched")
            self.assertEqual(summary["outputs"]["summary"], str(Path(tmpdir) / "import-summary.json"))

    def test_existing_plan_keeps_other_fields(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            plan_path = Path(tmpdir) / "current.json"
            plan_path.write_text(
                json.dumps(
                    {
                        "data": {
                            "rows": [
                                {"phase": "Engage", "focus": "old", "languageTarget": "", "assessment": ""},
                                {"phase": "Evaluate", "focus": "", "languageTarget": "", "assessment": ""},
                            ],
                            "notes": "Term 2",
                        }
                    }
                ),
                encoding="utf-8",
            )
            proc = run_cli(
                "import",
                "sample-data/monthly_semicolon.csv",
                "--period",
                "monthly",
                "--plan",
                str(plan_path),
                "--json",
                "--dry-run",
            )
            self.assertEqual(proc.returncode, 0, proc.stderr)
            payload = json.loads(proc.stdout)
            self.assertEqual(payload["status"], "matched")
            self.assertEqual(payload["data"]["notes"], "Term 2")
            self.assertEqual(payload["data"]["rows"][0]["focus"], "Hook; picture prompt")
            self.assertEqual(payload["data"]["rows"][1]["focus"], 'Unit test "A"')
            self.assertEqual(payload["outputs"], {})

    def test_positional_import_from_stdin(self):
        text = (ROOT / "sample-data" / "daily_unlabeled.tsv").read_text(encoding="utf-8")
        proc = run_cli("import", "-", "--period", "daily", "--json", "--dry-run", stdin=text)
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["status"], "replaced")
        self.assertEqual(payload["mode"], "positional")
        self.assertEqual(
            payload["data"]["stages"],
            [
                {
                    "stage": "Pair work",
                    "method": "Dialogue",
                    "teacherActions": "Model the dialogue",
                    "studentActions": "Practise in pairs",
                    "assessment": "Peer check",
                }
            ],
        )
        self.assertEqual(payload["run_summary"]["input_file"], "-")

    def test_header_artifact_import(self):
        proc = run_cli("import", "sample-data/extracted_artifact.tsv", "--period", "weekly", "--json", "--dry-run")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["mode"], "semantic")
        self.assertEqual(payload["header_tags"]["Topic :"], "focus")
        self.assertEqual(payload["data"]["rows"][0]["focus"], "Travel vocabulary")
        self.assertEqual(payload["data"]["rows"][1]["languageTarget"], "Countable nouns")

    def test_csv_format(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            output = Path(tmpdir) / "monthly.csv"
            proc = run_cli(
                "import",
                "sample-data/monthly_semicolon.csv",
                "--period",
                "monthly",
                "--format",
                "csv",
                "--output",
                str(output),
                "--out",
                tmpdir,
                "-q",
            )
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertEqual(proc.stderr, "")
            lines = output.read_text(encoding="utf-8").splitlines()
            self.assertEqual(lines[0], "Phase,Focus,Language Target,Assessment")
            self.assertEqual(lines[1], "Engage,Hook; picture prompt,,Observation")
            self.assertEqual(lines[5], 'Evaluate,"Unit test ""A""",,Rubric')

    def test_xlsx_format(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("import", "sample-data/weekly_paste.csv", "--period", "weekly", "--format", "xlsx", "--out", tmpdir)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertTrue((Path(tmpdir) / "plan.xlsx").exists())

    def test_empty_rebuild_returns_exit_3_and_raw_preview(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("import", "sample-data/empty_columns.csv", "--period", "weekly", "--out", tmpdir)
            self.assertEqual(proc.returncode, 3, proc.stderr)
            self.assertIn("Status: raw_preview", proc.stderr)
            self.assertFalse((Path(tmpdir) / "plan.json").exists())
            preview = json.loads((Path(tmpdir) / "raw-preview.json").read_text())
            self.assertEqual(preview["headers"], ["Notes", "Comments"])
            self.assertEqual(len(preview["matrix"]), 3)

    def test_header_only_returns_exit_4(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("import", "sample-data/header_only.txt", "--period", "weekly", "--out", tmpdir)
            self.assertEqual(proc.returncode, 4, proc.stderr)
            self.assertIn("No table data found", proc.stderr)
            self.assertEqual(list(Path(tmpdir).iterdir()), [])

    def test_default_output_dir_uses_stamp(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            fixture = ROOT / "sample-data" / "weekly_paste.csv"
            proc = run_cli("import", str(fixture), "--period", "weekly", cwd=Path(tmpdir))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            output_dir = Path(tmpdir) / "plan-doctor-output" / f"weekly_paste-{FIXED_STAMP}"
            self.assertTrue((output_dir / "plan.json").exists())
            self.assertTrue((output_dir / "import-summary.json").exists())


class PlanDoctorCliTests(unittest.TestCase):
    def test_parse_json(self):
        proc = run_cli("parse", "sample-data/extracted_artifact.tsv", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "plan_doctor.parse")
        self.assertEqual(payload["delimiter"], "tab")
        self.assertEqual(payload["headers"], ["Topic", ":", "Language", "Assessment"])
        self.assertEqual(len(payload["merged_headers"]), 1)
        self.assertEqual(payload["header_tags"]["Language"], "languageTarget")
        self.assertTrue(payload["looks_like_table"])

    def test_parse_text_output(self):
        proc = run_cli("parse", "sample-data/weekly_paste.csv")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Delimiter: comma", proc.stdout)
        self.assertIn("- Day: label", proc.stdout)
        self.assertIn("Intro to verbs", proc.stdout)

    def test_matrix_json_from_stdin(self):
        proc = run_cli("matrix", "-", "--json", stdin="a;b\n1;2;3\n")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["delimiter"], "semicolon")
        self.assertEqual(payload["matrix"], [["a", "b"], ["1", "2", "3"]])

    def test_fill_column(self):
        proc = run_cli("fill", "sample-data/free_text.txt", "--period", "weekly", "--column", "focus", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(
            [row["focus"] for row in payload["data"]["rows"]],
            [
                "Plan the first week around greetings.",
                "Second block: numbers and colours.",
                "Review everything on Wednesday.",
                "",
                "",
            ],
        )

    def test_fill_label_column_is_a_command_error(self):
        proc = run_cli("fill", "sample-data/free_text.txt", "--period", "weekly", "--column", "day")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Cannot fill", proc.stderr)

    def test_template(self):
        proc = run_cli("template", "--period", "yearly")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual([row["section"] for row in payload["rows"]], ["Desired Results", "Assessment Evidence", "Unit Overview"])

        proc = run_cli("template", "--period", "daily", "--format", "csv")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertTrue(proc.stdout.startswith("Stage,Method,Teacher Actions,Student Actions,Assessment\nEngage,5E,,,\n"))

    def test_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0)
        self.assertEqual(proc.stdout.strip(), __version__)

    def test_missing_period_is_exit_1(self):
        proc = run_cli("import", "sample-data/weekly_paste.csv")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("--period", proc.stderr)

    def test_unknown_period_is_exit_1(self):
        proc = run_cli("template", "--period", "hourly")
        self.assertEqual(proc.returncode, 1)

    def test_missing_input_is_exit_1(self):
        proc = run_cli("parse", "sample-data/does-not-exist.csv")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_document_input_is_exit_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "plan.pdf"
            path.write_bytes(b"%PDF-1.4\n")
            proc = run_cli("parse", str(path))
            self.assertEqual(proc.returncode, 2)
            self.assertIn("Unsupported format '.pdf'", proc.stderr)


if __name__ == "__main__":
    unittest.main()
