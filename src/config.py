import copy
import json
import os
from pathlib import Path

from locators import BASE_URL


DEFAULT_CONFIG_PATH = Path("suite.config.json")

DEFAULT_CONFIG = {
    "base_url": BASE_URL,
    "test_dir": "./",
    "output_dir": "test-results",
    "timeout": 30_000,
    "expect_timeout": 5_000,
    # 0: actions wait until the test timeout
    "action_timeout": 0,
    # None means: 1 retry under CI, none locally
    "retries": None,
    "reporter": [
        ["list", {}],
        ["html", {"open": "never", "output_folder": "playwright-report"}],
    ],
    "use": {
        "headless": True,
        "viewport": {"width": 1366, "height": 900},
        "screenshot": "only-on-failure",
        "trace": "retain-on-failure",
    },
    "projects": [
        {"name": "chromium", "use": {"browserName": "chromium"}},
        {"name": "firefox", "use": {"browserName": "firefox"}},
        {"name": "webkit", "use": {"browserName": "webkit"}},
    ],
}

SCREENSHOT_MODES = ("off", "on", "only-on-failure")
TRACE_MODES = ("off", "on", "retain-on-failure")
BROWSER_NAMES = ("chromium", "firefox", "webkit")


def is_ci(env: dict | None = None) -> bool:
    env = os.environ if env is None else env
    return str(env.get("CI", "")).strip().lower() not in ("", "0", "false", "no")


def merge(base: dict, override: dict) -> dict:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def check_config(config: dict) -> dict:
    use = config.get("use", {})
    if use.get("screenshot") not in SCREENSHOT_MODES:
        raise SystemExit(f"Invalid screenshot mode: {use.get('screenshot')!r}")
    if use.get("trace") not in TRACE_MODES:
        raise SystemExit(f"Invalid trace mode: {use.get('trace')!r}")
    if not config.get("projects"):
        raise SystemExit("No projects configured")
    for p in config["projects"]:
        engine = (p.get("use") or {}).get("browserName")
        if engine not in BROWSER_NAMES:
            raise SystemExit(f"Project '{p.get('name')}' has unknown browserName {engine!r}")
    if int(config.get("timeout") or 0) <= 0:
        raise SystemExit("timeout must be a positive number of milliseconds")
    if int(config.get("action_timeout") or 0) < 0:
        raise SystemExit("action_timeout cannot be negative")
    if int(config.get("retries") or 0) < 0:
        raise SystemExit("retries cannot be negative")
    return config


def load_config(path: str | Path | None = None, env: dict | None = None, overrides: dict | None = None) -> dict:
    """Defaults <- config file <- environment <- CLI overrides."""
    env = os.environ if env is None else env
    config = copy.deepcopy(DEFAULT_CONFIG)

    cfg_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if cfg_path.exists():
        try:
            file_config = json.loads(cfg_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise SystemExit(f"Cannot load config {cfg_path}: {e}")
        config = merge(config, file_config)
    elif path:
        raise SystemExit(f"Config file not found: {cfg_path}")

    if env.get("BASE_URL"):
        config["base_url"] = env["BASE_URL"]
    for k, v in (overrides or {}).items():
        if v is None:
            continue
        if k == "headless":
            config["use"]["headless"] = v
        elif k == "projects":
            config["projects"] = select_projects(config["projects"], v)
        else:
            config[k] = v

    if config.get("retries") is None:
        config["retries"] = 1 if is_ci(env) else 0
    return check_config(config)


def select_projects(projects: list[dict], names: list[str]) -> list[dict]:
    wanted = list(names)
    chosen = [p for p in projects if p.get("name") in wanted]
    missing = [n for n in wanted if n not in {p.get("name") for p in projects}]
    if missing:
        raise SystemExit(f"Unknown project(s): {', '.join(missing)}")
    return chosen


def reporter_options(config: dict, name: str) -> dict | None:
    """Options for the named reporter, or None when it is not enabled."""
    for entry in config.get("reporter", []):
        if isinstance(entry, str):
            entry = [entry, {}]
        if entry and entry[0] == name:
            return entry[1] if len(entry) > 1 else {}
    return None
