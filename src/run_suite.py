#!/usr/bin/env python3

import argparse
import asyncio
import html
import json
import os
import webbrowser
from datetime import datetime
from pathlib import Path

from config import load_config, reporter_options
from runner import run_test_suite
from scenarios import expand_steps, full_title, load_suite


def summarize(results_json: dict) -> dict:
    tests = results_json.get("tests", [])
    return {
        "total": len(tests),
        "passed": sum(1 for r in tests if r.get("status") == "passed"),
        "failed": sum(1 for r in tests if r.get("status") == "failed"),
        "flaky": sum(1 for r in tests if r.get("flaky")),
    }


def format_list_line(result: dict) -> str:
    mark = "✓" if result.get("status") == "passed" else "✖"
    line = f"{mark} [{result.get('project', '?')}] › {result.get('title') or result.get('name')} ({result.get('duration', 0):.1f}s)"
    if result.get("retry"):
        line += f" (retry #{result['retry']})"
    if result.get("flaky"):
        line += " flaky"
    return line


def print_list_line(result: dict) -> None:
    print(format_list_line(result))
    if result.get("status") == "failed":
        error = result.get("error", "")
        # Trim error for readability
        err_excerpt = error if len(error) < 300 else (error[:297] + "...")
        where = f"step {result['failed_step']} ({result.get('phase')})" if result.get("failed_step") else result.get("phase") or ""
        print(f"    {where}: {err_excerpt} (url={result.get('url', '')})")


def write_html_report(results_json: dict, html_path: Path):
    counts = summarize(results_json)

    doc = f"""
<html><head><meta charset="utf-8"><title>Saucedemo UI Test Report</title>
<style>
body {{ font-family: Arial, sans-serif; padding: 20px; }}
.summary {{ margin-bottom: 16px; }}
.pass {{ color: #0a7b44; }}
.fail {{ color: #b00020; }}
.flaky {{ color: #b26a00; }}
pre {{ background: #f6f8fa; padding: 12px; border-radius: 6px; overflow: auto; }}
</style>
</head><body>
  <h1>Saucedemo UI Test Report</h1>
  <div class="summary">
    <strong>Base URL:</strong> {html.escape(results_json.get('base_url', ''))} &nbsp;
    <strong>Projects:</strong> {html.escape(', '.join(results_json.get('projects', [])))}
  </div>
  <div class="summary">
    <strong>Total:</strong> {counts['total']} &nbsp; <strong class="pass">Passed:</strong> {counts['passed']} &nbsp; <strong class="fail">Failed:</strong> {counts['failed']} &nbsp; <strong class="flaky">Flaky:</strong> {counts['flaky']}
  </div>
  <hr />
  {''.join(render_test_result(tr, html_path.parent) for tr in results_json.get('tests', []))}
</body></html>
"""
    html_path.parent.mkdir(parents=True, exist_ok=True)
    with open(html_path, "w", encoding="utf-8") as f:
        f.write(doc)


def artifact_href(path: str, report_dir: Path) -> str:
    try:
        return os.path.relpath(Path(path).resolve(), report_dir.resolve())
    except ValueError:
        return str(Path(path).resolve())


def render_test_result(test_result: dict, report_dir: Path) -> str:
    status = test_result.get("status", "unknown")
    status_class = "pass" if status == "passed" else "fail"
    if test_result.get("flaky"):
        status_class = "flaky"
    title = html.escape(test_result.get("title") or test_result.get("name", "Unnamed Test"))
    project = html.escape(test_result.get("project", ""))
    error = test_result.get("error", "")
    screenshot = test_result.get("screenshot", "")
    trace = test_result.get("trace", "")
    steps_rendered = html.escape(json.dumps(test_result.get("steps", []), indent=2))
    img_tag = f"<div><img src=\"{html.escape(artifact_href(screenshot, report_dir))}\" style=\"max-width: 100%; border: 1px solid #ddd;\" /></div>" if screenshot else ""
    trace_tag = f"<div>Trace: <a href=\"{html.escape(artifact_href(trace, report_dir))}\">{html.escape(Path(trace).name)}</a></div>" if trace else ""
    where = ""
    if test_result.get("failed_step"):
        where = f"Step {test_result['failed_step']} ({test_result.get('phase')})\n"
    error_block = f"<pre>{html.escape(where + error)}</pre>" if error else ""
    retry = f" — retry #{test_result['retry']}" if test_result.get("retry") else ""
    return f"""
  <section>
    <h3 class="{status_class}">[{project}] {title} — {status.upper()}{retry}</h3>
    <details>
      <summary>Steps</summary>
      <pre>{steps_rendered}</pre>
    </details>
    {img_tag}
    {trace_tag}
    {error_block}
  </section>
  <hr />
"""


def maybe_open_report(html_path: Path, mode: str, failed: int) -> None:
    if mode == "always" or (mode == "on-failure" and failed):
        webbrowser.open(html_path.resolve().as_uri())


def list_tests(config: dict, scenarios: list[dict]) -> None:
    for project in config["projects"]:
        for s in scenarios:
            print(f"  [{project['name']}] › {full_title(s)} ({len(expand_steps(s))} steps)")
    print(f"Total: {len(scenarios) * len(config['projects'])} test(s) in {len(config['projects'])} project(s)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Saucedemo UI scenarios → Playwright runner")
    parser.add_argument("--config", help="Path to suite config JSON (default: suite.config.json)")
    parser.add_argument("--base-url", help="Base URL under test")
    parser.add_argument("--project", action="append", help="Only run this project (repeatable)")
    parser.add_argument("--grep", help="Only run tests whose title matches this regex")
    parser.add_argument("--retries", type=int, help="Retries per failing test (default: 1 under CI, else 0)")
    parser.add_argument("--timeout", type=int, help="Per-test timeout in milliseconds")
    parser.add_argument("--output-dir", help="Directory for run artifacts")
    parser.add_argument("--scenarios-file", help="Load scenarios from this JSON file instead of discovering them")
    parser.add_argument("--headful", action="store_true", help="Run browser headful for debugging")
    parser.add_argument("--verbose", action="store_true", help="Print step-by-step logs")
    parser.add_argument("--list", action="store_true", help="List tests without running them")
    return parser


def main(argv: list[str] | None = None):
    args = build_parser().parse_args(argv)

    config = load_config(args.config, overrides={
        "base_url": args.base_url,
        "projects": args.project,
        "retries": args.retries,
        "timeout": args.timeout,
        "output_dir": args.output_dir,
        "headless": False if args.headful else None,
    })

    try:
        scenarios = load_suite(config["test_dir"], scenarios_file=args.scenarios_file, grep=args.grep)
    except ValueError as e:
        raise SystemExit(f"Invalid suite: {e}")

    if args.list:
        list_tests(config, scenarios)
        return 0
    if not scenarios:
        raise SystemExit("No tests found")

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = Path(config["output_dir"]) / f"run_{timestamp}"
    run_dir.mkdir(parents=True, exist_ok=True)

    list_opts = reporter_options(config, "list")
    print(f"🏃 Running {len(scenarios) * len(config['projects'])} test(s) using {len(config['projects'])} project(s)")
    results_json = asyncio.run(run_test_suite(
        config=config,
        scenarios=scenarios,
        run_dir=run_dir,
        verbose=args.verbose,
        on_result=print_list_line if list_opts is not None else None,
    ))

    results_path = run_dir / "results.json"
    with open(results_path, "w", encoding="utf-8") as f:
        json.dump(results_json, f, indent=2)
    print(f"📊 Results written: {results_path}")

    counts = summarize(results_json)
    html_opts = reporter_options(config, "html")
    if html_opts is not None:
        report_path = Path(html_opts.get("output_folder", "playwright-report")) / "index.html"
        write_html_report(results_json, report_path)
        print(f"📝 HTML report: {report_path}")
        maybe_open_report(report_path, html_opts.get("open", "never"), counts["failed"])

    # Final console summary
    print(f"✅ Done. Total: {counts['total']}, Passed: {counts['passed']}, Failed: {counts['failed']}, Flaky: {counts['flaky']}")
    return 1 if counts["failed"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
