#!/usr/bin/env python3
"""
Setup Verification Script

Validates configuration, the timezone database and the calendar API
before running the scheduler.

Usage:
    python scripts/verify_setup.py
"""

import asyncio
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()


def print_header(title: str) -> None:
    """Print section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print(f"{'='*60}")


def print_result(name: str, success: bool, message: str = "") -> None:
    """Print check result."""
    status = "[PASS]" if success else "[FAIL]"
    color = "\033[92m" if success else "\033[91m"
    reset = "\033[0m"
    msg = f" - {message}" if message else ""
    print(f"  {color}{status}{reset} {name}{msg}")


def check_env_file() -> bool:
    """Check if .env file exists. Defaults apply without one."""
    env_path = project_root / ".env"
    exists = env_path.exists()
    if not exists:
        print_result(".env file", True, "Not found, using defaults")
    else:
        print_result(".env file", True, "Found")
    return exists


def check_dependencies() -> bool:
    """Check if required Python packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "pydantic",
        "pydantic_settings",
        "httpx",
        "dotenv",
        "dateutil",
    ]

    missing = []
    for package in required_packages:
        try:
            __import__(package)
        except ImportError:
            missing.append(package)

    if missing:
        print_result("Python packages", False, f"Missing: {', '.join(missing)}")
        return False
    else:
        print_result("Python packages", True, "All required packages installed")
        return True


def check_settings() -> bool:
    """Load settings and show the schedule engine configuration."""
    try:
        from app.config import get_settings
        settings = get_settings()
    except Exception as e:
        print_result("Settings", False, str(e)[:80])
        return False

    print_result("TIMEZONE", True, settings.timezone)
    print_result("RECURRING_ENABLED", True, str(settings.recurring_enabled))
    print_result("DEFAULT_TIME_OF_DAY", True, settings.default_time_of_day.strftime("%H:%M"))
    print_result("CONFLICT_DEGRADE_POLICY", True, settings.conflict_degrade_policy)
    print_result("CALENDAR_API_URL", True, settings.calendar_api_url)
    return True


def check_engine() -> bool:
    """Build the engine and expand a sample rule."""
    try:
        from app.core.scheduling import MonthlyRule, ScheduledSession, get_schedule_engine

        engine = get_schedule_engine()
        today = datetime.now(engine.timezone).date()
        sample = ScheduledSession(
            id="verify",
            owner_id="verify",
            subject_name="Sample",
            participant_name="Sample",
            rule=MonthlyRule(day_of_month=31),
        )
        result = engine.calculator.expand(sample, today, today + timedelta(days=365))

        print_result(
            "Schedule engine",
            not result.truncated,
            f"{len(result)} monthly occurrence(s) on day 31 in the next year",
        )
        return not result.truncated

    except Exception as e:
        print_result("Schedule engine", False, str(e)[:80])
        return False


async def check_calendar_api() -> bool:
    """Check if the calendar API is reachable."""
    url = os.getenv("CALENDAR_API_URL", "http://localhost:8001")

    try:
        import httpx

        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(f"{url}/health")

            if response.status_code == 200:
                print_result("Calendar API", True, f"Reachable at {url}")
                return True
            else:
                print_result("Calendar API", False, f"Responded with {response.status_code}")
                return False

    except httpx.HTTPError:
        print_result("Calendar API", False, f"Not reachable at {url}")
        return False


async def main():
    """Run all verification checks."""
    print("\n" + "="*60)
    print(" Tutoring Scheduler - Setup Verification")
    print("="*60)

    critical_failed = False

    print_header("Environment File")
    check_env_file()

    print_header("Python Dependencies")
    if not check_dependencies():
        critical_failed = True

    print_header("Configuration")
    if not critical_failed and not check_settings():
        critical_failed = True

    print_header("Schedule Engine")
    if not critical_failed and not check_engine():
        critical_failed = True

    # Calendar API is a separate service; sync degrades without it
    print_header("Service Connections")
    calendar_ok = await check_calendar_api()

    print_header("Summary")

    if critical_failed:
        print("\n  \033[91mCRITICAL: Configuration or engine checks failed.\033[0m")
        print("  Please fix the issues above before running the application.")
        print()
        return 1
    elif not calendar_ok:
        print("\n  \033[93mWARNING: Calendar API unavailable.\033[0m")
        print("  Planning works; calendar sync will fail until it is reachable.")
        print()
        return 0
    else:
        print("\n  \033[92mAll checks passed!\033[0m")
        print("  You can start the application with:")
        print("    uvicorn app.main:app --reload")
        print()
        return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
