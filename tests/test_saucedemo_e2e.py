import os

import pytest

from config import load_config
from runner import run_test_suite
from scenarios import load_suite


pytestmark = [
    pytest.mark.browser,
    pytest.mark.skipif(os.environ.get("SAUCEDEMO_E2E") != "1", reason="Set SAUCEDEMO_E2E=1 to run against the live site"),
]


@pytest.mark.asyncio
async def test_builtin_suite_passes_on_chromium(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = load_config(env={}, overrides={"projects": ["chromium"]})
    scenarios = load_suite(tmp_path)

    results = await run_test_suite(config, scenarios, tmp_path / "run")

    failed = [f"{r['name']}: {r['error']}" for r in results["tests"] if r["status"] != "passed"]
    assert not failed, "\n".join(failed)
    assert len(results["tests"]) == 6
