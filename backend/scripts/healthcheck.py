import os
import sys
import requests
from dotenv import load_dotenv
from sqlalchemy import create_engine, inspect

REQUIRED_TABLES = ['users', 'categories', 'products', 'shipping_config', 'discount_coupons', 'orders', 'order_items']

def print_status(check_name: str, status: bool, details: str = ""):
    """
    Renders the status of a health system check to the console.

    Args:
        check_name: Human-readable identifier for the check.
        status: Boolean indicating success or failure.
        details: Optional supplementary information.
    """
    color = "\033[92m[OK]\033[0m" if status else "\033[91m[FAIL]\033[0m"
    print(f"{color} {check_name:<30} {details}")

def run_healthcheck():
    """
    Verifies the environment, the database schema and a running API.
    """
    print("\n=== Storefront Pricing Health Verification ===\n")

    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    env_path = os.path.join(base_dir, ".env")

    has_env = os.path.exists(env_path)
    print_status(".env file exists", has_env, env_path if has_env else "using process environment")
    if has_env:
        load_dotenv(env_path)

    database_url = os.getenv("DATABASE_URL", "sqlite:///storefront.db")
    try:
        engine = create_engine(database_url)
        tables = inspect(engine).get_table_names()
        missing = [t for t in REQUIRED_TABLES if t not in tables]
        print_status("Database schema initialized", not missing,
                     f"missing: {', '.join(missing)}" if missing else f"Found {len(tables)} tables")
        if missing:
            sys.exit(1)
    except Exception as e:
        print_status("Database connection", False, str(e))
        sys.exit(1)

    api_url = os.getenv("STOREFRONT_API_URL", "http://localhost:8000/api/v1").rstrip("/")
    try:
        r = requests.get(f"{api_url}/health", timeout=5)
        print_status("API health endpoint", r.status_code == 200, f"HTTP {r.status_code}")
        r = requests.get(f"{api_url}/shipping/config", timeout=5)
        print_status("Shipping config readable", r.status_code == 200, r.text[:80])
    except requests.RequestException as e:
        print_status("API reachable", False, str(e))

    print("\nHealth check completed.")

if __name__ == "__main__":
    run_healthcheck()
