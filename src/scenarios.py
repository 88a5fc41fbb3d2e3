import json
import os
import re
from pathlib import Path

from locators import LOCATORS, validate_locators


KNOWN_ACTIONS = {
    "navigate",
    "fill",
    "click",
    "select_option",
    "wait_for",
    "assert_visible",
    "assert_hidden",
    "assert_count",
    "assert_text",
    "assert_contains_text",
    "assert_url_matches",
    "assert_url",
    "assert_sorted",
    "screenshot",
}

# Actions that operate on an element and therefore need a target
TARGETED_ACTIONS = {
    "fill",
    "click",
    "select_option",
    "wait_for",
    "assert_visible",
    "assert_hidden",
    "assert_count",
    "assert_text",
    "assert_contains_text",
    "assert_sorted",
}

# Actions whose "value" is the input or the expected result
VALUE_ACTIONS = {
    "fill",
    "select_option",
    "assert_count",
    "assert_text",
    "assert_contains_text",
    "assert_url",
    "assert_url_matches",
}

SORT_ORDERS = ("asc", "desc")

SKIP_DIRS = {"node_modules", "test-results", "playwright-report", "__pycache__"}

STANDARD_USER = ("standard_user", "secret_sauce")
INVALID_USER = ("invalid_user", "wrong_password")


def login_steps(username: str, password: str) -> list[dict]:
    return [
        {"action": "navigate", "url": "/"},
        {"action": "fill", "target": "username", "value": username},
        {"action": "fill", "target": "password", "value": password},
        {"action": "click", "target": "login_button"},
    ]


def logged_in_checks() -> list[dict]:
    return [
        {"action": "assert_url_matches", "value": r"inventory\.html"},
        {"action": "assert_text", "target": "products_title", "value": "Products"},
    ]


# Setup steps run before every scenario that names them
FIXTURES = {
    "login": login_steps(*STANDARD_USER) + logged_in_checks(),
}

AUTHENTICATED = "Authenticated flows"
UNAUTHENTICATED = "Saucedemo UI tests"

SAUCEDEMO_SCENARIOS = [
    {
        "name": "Add to Cart Test - Saucedemo",
        "group": AUTHENTICATED,
        "fixture": "login",
        "steps": [
            {"action": "click", "target": "add_backpack"},
            {"action": "assert_visible", "target": "cart_badge"},
            {"action": "assert_text", "target": "cart_badge", "value": "1"},
            {"action": "assert_url_matches", "value": r"inventory\.html"},
        ],
    },
    {
        "name": "Remove from Cart Test - Saucedemo",
        "group": AUTHENTICATED,
        "fixture": "login",
        "steps": [
            {"action": "click", "target": "add_backpack"},
            {"action": "assert_visible", "target": "cart_badge"},
            {"action": "assert_text", "target": "cart_badge", "value": "1"},
            {"action": "click", "target": "remove_backpack"},
            # Empty cart renders no badge at all
            {"action": "assert_hidden", "target": "cart_badge"},
            {"action": "assert_count", "target": "cart_badge", "value": 0},
            {"action": "assert_url_matches", "value": r"inventory\.html"},
        ],
    },
    {
        "name": "Filter products test - Price low to high",
        "group": AUTHENTICATED,
        "fixture": "login",
        "steps": [
            {"action": "select_option", "target": "sort_select", "value": "lohi"},
            {"action": "assert_visible", "target": "inventory_prices", "nth": 0},
            {"action": "assert_sorted", "target": "inventory_prices", "order": "asc", "strip": "$", "min_count": 2},
            {"action": "assert_url_matches", "value": r"inventory\.html"},
        ],
    },
    {
        "name": "Logout Test - Saucedemo",
        "group": AUTHENTICATED,
        "fixture": "login",
        "steps": [
            {"action": "click", "target": "burger_menu_button"},
            {"action": "wait_for", "target": "logout_link", "state": "visible"},
            {"action": "click", "target": "logout_link"},
            {"action": "assert_url", "value": "/"},
        ],
    },
    {
        "name": "Login Test - Saucedemo",
        "group": UNAUTHENTICATED,
        "steps": login_steps(*STANDARD_USER) + logged_in_checks(),
    },
    {
        "name": "Invalid Login Test - Saucedemo",
        "group": UNAUTHENTICATED,
        "steps": login_steps(*INVALID_USER) + [
            {"action": "assert_visible", "target": "error_message"},
            {"action": "assert_contains_text", "target": "error_message", "value": "Username and password do not match"},
            {"action": "assert_url", "value": "/"},
        ],
    },
]


def validate_scenario(scenario: dict, fixtures: dict | None = None) -> dict:
    fixtures = FIXTURES if fixtures is None else fixtures
    if not isinstance(scenario, dict):
        raise ValueError(f"Scenario must be an object: {scenario!r}")
    name = scenario.get("name")
    if not name or not isinstance(name, str):
        raise ValueError(f"Scenario without a name: {scenario!r}")
    steps = scenario.get("steps")
    if not isinstance(steps, list) or not steps:
        raise ValueError(f"Scenario '{name}' has no steps")
    fixture = scenario.get("fixture")
    if fixture and fixture not in fixtures:
        raise ValueError(f"Scenario '{name}' uses unknown fixture '{fixture}'")
    for idx, step in enumerate(steps, start=1):
        action = step.get("action") if isinstance(step, dict) else None
        where = f"Scenario '{name}' step {idx}"
        if action not in KNOWN_ACTIONS:
            raise ValueError(f"{where}: unknown action {action!r}")
        if action in TARGETED_ACTIONS and not step.get("target"):
            raise ValueError(f"{where}: '{action}' needs a target")
        if action in VALUE_ACTIONS and step.get("value") is None:
            raise ValueError(f"{where}: '{action}' needs a value")
        if action == "assert_count" and (isinstance(step["value"], bool) or not isinstance(step["value"], int)):
            raise ValueError(f"{where}: count must be an integer, got {step['value']!r}")
        if action == "assert_url_matches":
            try:
                re.compile(step["value"])
            except (re.error, TypeError) as e:
                raise ValueError(f"{where}: bad URL pattern ({e})")
        if action == "assert_sorted" and step.get("order", "asc") not in SORT_ORDERS:
            raise ValueError(f"{where}: order must be one of {', '.join(SORT_ORDERS)}")
    return scenario


def load_scenarios_file(path: Path) -> list[dict]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Cannot read scenarios from {path}: {e}")
    if isinstance(data, dict):
        data = data.get("scenarios", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of scenarios")
    return data


def discover_scenarios(test_dir: str | Path) -> list[dict]:
    """Collect every *.scenarios.json under test_dir; fall back to the built-in suite."""
    found: list[dict] = []
    for dirpath, dirnames, filenames in os.walk(test_dir):
        # prune in place so skipped trees are never entered
        dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d not in SKIP_DIRS)
        for fname in sorted(filenames):
            if fname.endswith(".scenarios.json"):
                found.extend(load_scenarios_file(Path(dirpath) / fname))
    return found or [dict(s) for s in SAUCEDEMO_SCENARIOS]


def load_suite(test_dir: str | Path = "./", scenarios_file: str | None = None, grep: str | None = None) -> list[dict]:
    """Validate locators and scenarios once, then apply the name filter."""
    validate_locators(LOCATORS)
    if scenarios_file:
        scenarios = load_scenarios_file(Path(scenarios_file))
    else:
        scenarios = discover_scenarios(test_dir)
    for s in scenarios:
        validate_scenario(s)
    names = [s["name"] for s in scenarios]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ValueError(f"Duplicate scenario names: {', '.join(dupes)}")
    if grep:
        try:
            pattern = re.compile(grep, re.I)
        except re.error as e:
            raise ValueError(f"Invalid grep pattern {grep!r}: {e}")
        scenarios = [s for s in scenarios if pattern.search(full_title(s))]
    return scenarios


def full_title(scenario: dict) -> str:
    group = scenario.get("group")
    return f"{group} › {scenario['name']}" if group else scenario["name"]


def expand_steps(scenario: dict, fixtures: dict | None = None) -> list[dict]:
    """Fixture steps first (tagged phase=setup), then the scenario body."""
    fixtures = FIXTURES if fixtures is None else fixtures
    steps: list[dict] = []
    fixture = scenario.get("fixture")
    if fixture:
        steps.extend({**s, "phase": "setup"} for s in fixtures[fixture])
    steps.extend({**s, "phase": "test"} for s in scenario["steps"])
    return steps
