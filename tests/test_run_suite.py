import json

import pytest

import run_suite
from run_suite import format_list_line, main, summarize, write_html_report


RESULTS = {
    "base_url": "https://www.saucedemo.com/",
    "projects": ["chromium"],
    "tests": [
        {
            "name": "Add to Cart Test - Saucedemo",
            "title": "Authenticated flows › Add to Cart Test - Saucedemo",
            "project": "chromium",
            "status": "passed",
            "error": "",
            "duration": 1.3,
            "retry": 1,
            "flaky": True,
            "screenshot": "",
            "trace": "",
            "steps": [{"action": "click", "target": "add_backpack"}],
        },
        {
            "name": "Invalid Login Test - Saucedemo",
            "title": "Saucedemo UI tests › Invalid Login Test - Saucedemo",
            "project": "chromium",
            "status": "failed",
            "error": "Locator expected to contain text <Username and password do not match>",
            "failed_step": 5,
            "phase": "test",
            "duration": 5.0,
            "retry": 0,
            "flaky": False,
            "screenshot": "test-results/run_x/screenshots/shot.png",
            "trace": "test-results/run_x/traces/trace.zip",
            "steps": [],
        },
    ],
}


def test_summarize():
    assert summarize(RESULTS) == {"total": 2, "passed": 1, "failed": 1, "flaky": 1}
    assert summarize({}) == {"total": 0, "passed": 0, "failed": 0, "flaky": 0}


def test_format_list_line():
    passed, failed = RESULTS["tests"]
    assert format_list_line(passed) == "✓ [chromium] › Authenticated flows › Add to Cart Test - Saucedemo (1.3s) (retry #1) flaky"
    assert format_list_line(failed).startswith("✖ [chromium] › Saucedemo UI tests › Invalid Login")


def test_html_report(tmp_path):
    path = tmp_path / "playwright-report" / "index.html"
    write_html_report(RESULTS, path)
    doc = path.read_text(encoding="utf-8")
    assert "<strong>Total:</strong> 2" in doc
    assert "Authenticated flows › Add to Cart Test - Saucedemo" in doc
    assert "&lt;Username and password do not match&gt;" in doc
    assert "Step 5 (test)" in doc
    assert "shot.png" in doc
    assert "trace.zip" in doc


def test_list_mode(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CI", raising=False)
    assert main(["--list"]) == 0
    out = capsys.readouterr().out
    assert "[webkit] › Authenticated flows › Logout Test - Saucedemo" in out
    assert "Total: 18 test(s) in 3 project(s)" in out


def test_list_mode_with_filters(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["--list", "--project", "chromium", "--grep", "cart"]) == 0
    out = capsys.readouterr().out
    assert "Total: 2 test(s) in 1 project(s)" in out


def test_invalid_scenarios_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps([{"name": "x", "steps": [{"action": "teleport"}]}]))
    with pytest.raises(SystemExit, match="Invalid suite"):
        main(["--list", "--scenarios-file", str(bad)])


def test_main_writes_results_and_report(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    seen = {}

    async def fake_suite(config, scenarios, run_dir, verbose=False, on_result=None):
        seen["projects"] = [p["name"] for p in config["projects"]]
        seen["count"] = len(scenarios)
        for r in RESULTS["tests"]:
            on_result(r)
        return RESULTS

    monkeypatch.setattr(run_suite, "run_test_suite", fake_suite)

    assert main(["--project", "chromium"]) == 1
    assert seen == {"projects": ["chromium"], "count": 6}
    assert (tmp_path / "playwright-report" / "index.html").exists()
    [results] = list((tmp_path / "test-results").glob("run_*/results.json"))
    assert json.loads(results.read_text())["tests"][0]["status"] == "passed"
    out = capsys.readouterr().out
    assert "✖ [chromium] › Saucedemo UI tests › Invalid Login Test - Saucedemo" in out
    assert "Failed: 1" in out


def test_invalid_grep_pattern(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit, match="Invalid suite: Invalid grep pattern"):
        main(["--grep", "(", "--list"])
