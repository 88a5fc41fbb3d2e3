BASE_URL = "https://www.saucedemo.com/"

# Re-usable locators (semantic role -> selector), shared by every scenario
LOCATORS = {
    "username": "input[data-test='username']",
    "password": "input[data-test='password']",
    "login_button": "input[data-test='login-button']",
    "add_backpack": "button[data-test='add-to-cart-sauce-labs-backpack']",
    "remove_backpack": "button[data-test='remove-sauce-labs-backpack']",
    "cart_badge": "span[data-test='shopping-cart-badge']",
    "inventory_prices": "div.inventory_item_price",
    "burger_menu_button": "button[id='react-burger-menu-btn']",
    "logout_link": "a[id='logout_sidebar_link']",
    "error_message": "[data-test='error']",
    "products_title": ".title",
    "sort_select": "select[data-test='product-sort-container']",
}


def validate_locators(locators: dict) -> dict:
    """Reject empty or duplicated selectors. Returns the mapping unchanged."""
    seen: dict[str, str] = {}
    for name, selector in locators.items():
        if not isinstance(selector, str) or not selector.strip():
            raise ValueError(f"Locator '{name}' has an empty selector")
        key = selector.strip()
        if key in seen:
            raise ValueError(f"Locators '{seen[key]}' and '{name}' share selector {key!r}")
        seen[key] = name
    return locators


def resolve_selector(target: str, locators: dict | None = None) -> str:
    """Map a locator name to its selector; anything else is taken as a raw selector."""
    locators = LOCATORS if locators is None else locators
    if target in locators:
        return locators[target]
    return target
