import asyncio
import re
import time
from pathlib import Path

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright, expect

from locators import resolve_selector
from scenarios import SORT_ORDERS, expand_steps, full_title


def sanitize_for_filename(text: str) -> str:
    """Sanitize text for use in filenames."""
    text = re.sub(r'[^\w\s-]', '', text)
    text = re.sub(r'[-\s]+', '_', text)
    return text.strip('_').lower()[:100]


def resolve_url(base_url: str, url: str) -> str:
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return base_url.rstrip("/") + "/" + url.lstrip("/")


def parse_price(text: str, strip: str = "$") -> float:
    cleaned = text.replace(strip, "").strip() if strip else text.strip()
    try:
        return float(cleaned)
    except ValueError:
        raise AssertionError(f"Not a number: {text!r}")


def check_sorted(values: list, order: str = "asc", min_count: int = 2) -> None:
    if order not in SORT_ORDERS:
        raise ValueError(f"Unknown sort order {order!r}, expected one of {', '.join(SORT_ORDERS)}")
    if len(values) < min_count:
        raise AssertionError(f"Expected at least {min_count} values to compare, got {len(values)}")
    for i in range(1, len(values)):
        prev, cur = values[i - 1], values[i]
        if order == "asc" and cur < prev:
            raise AssertionError(f"Not sorted ascending at index {i}: {prev} > {cur} in {values}")
        if order == "desc" and cur > prev:
            raise AssertionError(f"Not sorted descending at index {i}: {prev} < {cur} in {values}")


def describe_step(step: dict) -> str:
    parts = [step.get("action", "?")]
    if step.get("target"):
        parts.append(str(step["target"]))
    if step.get("url"):
        parts.append(str(step["url"]))
    if "value" in step and step.get("action") != "fill":
        parts.append(repr(step["value"]))
    return " ".join(parts)


def describe_error(e: BaseException) -> str:
    if isinstance(e, (AssertionError, PlaywrightError)):
        return str(e) or e.__class__.__name__
    return f"{e.__class__.__name__}: {e}"


def step_locator(page, step: dict):
    loc = page.locator(resolve_selector(step["target"]))
    if "nth" in step:
        loc = loc.nth(int(step["nth"]))
    return loc


async def run_step(page, step: dict, base_url: str, expect_timeout: int, action_timeout: int = 0, shot_path: Path | None = None) -> str:
    """Execute one step.

    Actions wait up to `action_timeout` ms (0 means no limit of their own, so only the
    test timeout applies); assertions poll up to `expect_timeout` ms. A step-level
    "timeout" overrides whichever of the two applies.
    """
    action = step["action"]
    t = int(step.get("timeout", action_timeout))
    et = int(step.get("timeout", expect_timeout))
    if action == "navigate":
        await page.goto(resolve_url(base_url, step.get("url") or "/"))
    elif action == "fill":
        await step_locator(page, step).fill(str(step["value"]), timeout=t)
    elif action == "click":
        await step_locator(page, step).click(timeout=t)
    elif action == "select_option":
        await step_locator(page, step).select_option(step["value"], timeout=t)
    elif action == "wait_for":
        await step_locator(page, step).wait_for(state=step.get("state", "visible"), timeout=t)
    elif action == "assert_visible":
        await expect(step_locator(page, step)).to_be_visible(timeout=et)
    elif action == "assert_hidden":
        await expect(step_locator(page, step)).to_be_hidden(timeout=et)
    elif action == "assert_count":
        await expect(step_locator(page, step)).to_have_count(int(step["value"]), timeout=et)
    elif action == "assert_text":
        await expect(step_locator(page, step)).to_have_text(str(step["value"]), timeout=et)
    elif action == "assert_contains_text":
        await expect(step_locator(page, step)).to_contain_text(str(step["value"]), timeout=et)
    elif action == "assert_url_matches":
        await expect(page).to_have_url(re.compile(step["value"]), timeout=et)
    elif action == "assert_url":
        await expect(page).to_have_url(resolve_url(base_url, step["value"]), timeout=et)
    elif action == "assert_sorted":
        loc = step_locator(page, step)
        texts = await loc.all_text_contents()
        values = [parse_price(x, step.get("strip", "$")) for x in texts]
        check_sorted(values, order=step.get("order", "asc"), min_count=int(step.get("min_count", 2)))
    elif action == "screenshot":
        if shot_path is None:
            raise AssertionError("No screenshot path available")
        await page.screenshot(path=str(shot_path), full_page=True)
        return str(shot_path)
    else:
        raise ValueError(f"Unknown action: {action}")
    return ""


async def run_steps(page, steps: list[dict], base_url: str, expect_timeout: int, progress: dict, action_timeout: int = 0, shot_for=None, verbose: bool = False) -> None:
    for idx, step in enumerate(steps, start=1):
        progress["index"] = idx
        progress["phase"] = step.get("phase", "test")
        if verbose:
            print(f"  → step {idx}: {describe_step(step)}")
        shot_path = shot_for(idx, step.get("name") or "screenshot") if step["action"] == "screenshot" and shot_for else None
        saved = await run_step(page, step, base_url, expect_timeout, action_timeout=action_timeout, shot_path=shot_path)
        if saved:
            progress.setdefault("screenshots", []).append(saved)
            if verbose:
                print(f"📸 Screenshot saved: {Path(saved).name}")


async def run_test_once(browser, scenario: dict, config: dict, run_dir: Path, project: str, attempt: int = 0, verbose: bool = False) -> dict:
    """Run one attempt of a scenario in a brand-new browser context.

    Anything that goes wrong inside the attempt, including context or page
    setup and trace export, becomes a failed result for this test only.
    """
    use = config["use"]
    screenshots_dir = run_dir / "screenshots"
    traces_dir = run_dir / "traces"
    slug = f"{sanitize_for_filename(project)}_{sanitize_for_filename(scenario['name'])}"
    suffix = f"_retry{attempt}" if attempt else ""

    def shot_for(idx: int, kind: str) -> Path:
        screenshots_dir.mkdir(parents=True, exist_ok=True)
        return screenshots_dir / f"{slug}_step{idx:02d}_{sanitize_for_filename(kind)}{suffix}.png"

    steps = expand_steps(scenario)
    progress: dict = {"index": 0, "phase": "setup"}
    status = "passed"
    error = ""
    current_url = ""
    screenshot = ""
    trace = ""
    started = time.monotonic()
    action_timeout = int(config.get("action_timeout") or 0)

    context = None
    try:
        context = await browser.new_context(viewport=use.get("viewport"))
        if use.get("trace", "off") != "off":
            await context.tracing.start(screenshots=True, snapshots=True)
        page = await context.new_page()
        page.set_default_timeout(action_timeout)
        page.set_default_navigation_timeout(config["timeout"])
        try:
            await asyncio.wait_for(
                run_steps(page, steps, config["base_url"], config["expect_timeout"], progress,
                          action_timeout=action_timeout, shot_for=shot_for, verbose=verbose),
                timeout=config["timeout"] / 1000,
            )
        except asyncio.TimeoutError:
            status = "failed"
            error = f"Test timeout of {config['timeout']}ms exceeded"
        except Exception as e:
            status = "failed"
            error = describe_error(e)
        current_url = page.url

        mode = use.get("screenshot", "off")
        if mode == "on" or (mode == "only-on-failure" and status == "failed"):
            kind = "failure" if status == "failed" else "final"
            shot = shot_for(progress["index"], kind)
            try:
                await page.screenshot(path=str(shot), full_page=True)
                screenshot = str(shot)
                if verbose:
                    print(f"📸 Screenshot saved: {shot.name}")
            except PlaywrightError as e:
                print(f"⚠️ Could not save screenshot: {e}")
        if not screenshot and progress.get("screenshots"):
            screenshot = progress["screenshots"][-1]

        mode = use.get("trace", "off")
        if mode != "off":
            if mode == "on" or status == "failed":
                traces_dir.mkdir(parents=True, exist_ok=True)
                path = traces_dir / f"{slug}{suffix}.zip"
                await context.tracing.stop(path=str(path))
                trace = str(path)
                if verbose:
                    print(f"🧭 Trace saved: {path.name}")
            else:
                await context.tracing.stop()
    except Exception as e:
        status = "failed"
        error = error or f"Browser context error: {describe_error(e)}"
        print(f"⚠️ Browser context error in [{project}] {scenario['name']}: {e}")
    finally:
        if context is not None:
            try:
                await context.close()
            except PlaywrightError as e:
                print(f"⚠️ Could not close context: {e}")

    return {
        "name": scenario["name"],
        "title": full_title(scenario),
        "group": scenario.get("group", ""),
        "project": project,
        "status": status,
        "error": error,
        "failed_step": progress["index"] if status == "failed" else None,
        "phase": progress["phase"] if status == "failed" else None,
        "url": current_url,
        "screenshot": screenshot,
        "trace": trace,
        "duration": round(time.monotonic() - started, 3),
        "retry": attempt,
        "steps": steps,
    }


async def run_test_with_retries(browser, scenario: dict, config: dict, run_dir: Path, project: str, verbose: bool = False, run_once=run_test_once) -> dict:
    """Whole-test retries: up to config['retries'] extra attempts, no backoff."""
    errors = []
    result: dict = {}
    for attempt in range(int(config.get("retries") or 0) + 1):
        if attempt:
            print(f"↻ Retrying [{project}] {scenario['name']} (retry #{attempt})")
        result = await run_once(browser, scenario, config, run_dir, project, attempt=attempt, verbose=verbose)
        if result["status"] == "passed":
            break
        errors.append(result["error"])
    result["flaky"] = result["status"] == "passed" and bool(errors)
    result["attempt_errors"] = errors
    return result


def launch_failure(scenario: dict, project: str, error: str) -> dict:
    return {
        "name": scenario["name"],
        "title": full_title(scenario),
        "group": scenario.get("group", ""),
        "project": project,
        "status": "failed",
        "error": error,
        "failed_step": None,
        "phase": "setup",
        "url": "",
        "screenshot": "",
        "trace": "",
        "duration": 0.0,
        "retry": 0,
        "steps": expand_steps(scenario),
        "flaky": False,
        "attempt_errors": [error],
    }


async def run_project(p, project: dict, scenarios: list[dict], config: dict, run_dir: Path, verbose: bool = False, on_result=None) -> list[dict]:
    name = project["name"]
    engine = project["use"]["browserName"]
    results = []
    try:
        browser = await getattr(p, engine).launch(headless=config["use"].get("headless", True))
    except PlaywrightError as e:
        print(f"✖ Could not launch {engine} for project '{name}': {e}")
        for s in scenarios:
            r = launch_failure(s, name, f"Browser launch failed: {e}")
            results.append(r)
            if on_result:
                on_result(r)
        return results

    try:
        for scenario in scenarios:
            r = await run_test_with_retries(browser, scenario, config, run_dir, name, verbose=verbose)
            results.append(r)
            if on_result:
                on_result(r)
    finally:
        await browser.close()
    return results


async def run_test_suite(config: dict, scenarios: list[dict], run_dir: Path, verbose: bool = False, on_result=None) -> dict:
    """Run every scenario against every project; projects run concurrently."""
    run_dir.mkdir(parents=True, exist_ok=True)
    if verbose:
        names = ", ".join(p["name"] for p in config["projects"])
        print(f"🏃 Running {len(scenarios)} test(s) on {names} (retries={config['retries']}, timeout={config['timeout']}ms)")

    started = time.monotonic()
    async with async_playwright() as p:
        per_project = await asyncio.gather(*(
            run_project(p, project, scenarios, config, run_dir, verbose=verbose, on_result=on_result)
            for project in config["projects"]
        ))

    results = [r for batch in per_project for r in batch]
    return {
        "base_url": config["base_url"],
        "projects": [p["name"] for p in config["projects"]],
        "duration": round(time.monotonic() - started, 3),
        "tests": results,
    }
