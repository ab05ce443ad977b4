#!/usr/bin/env python3
"""
Setup Verification Script

Checks configuration and outbound services before starting the outreach API.

Usage:
    python scripts/verify_setup.py
"""

import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

import httpx


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


def _mask(value: str) -> str:
    return f"{value[:8]}...{value[-4:]}" if len(value) > 12 else "***"


def check_settings() -> bool:
    """Load Settings and report the values that shape a mission."""
    try:
        from app.config import get_settings
        settings = get_settings()
    except Exception as e:
        print_result("Settings", False, str(e)[:80])
        return False

    print_result("Settings", True, f"{settings.app_name} ({settings.app_env})")

    key = settings.anthropic_api_key or ""
    print_result(
        "ANTHROPIC_API_KEY",
        bool(key),
        f"Set ({_mask(key)})" if key else "Not set - calls cannot run",
    )
    print_result("Dialogue model", True, settings.claude_dialogue_model)
    print_result(
        "Provider directory",
        True,
        settings.provider_directory_url or "built-in catalogue",
    )
    print_result(
        "Voice narration",
        True,
        settings.voice_service_url if settings.voice_enabled else "disabled (text pacing)",
    )
    print_result("No-answer probability", True, f"{settings.no_answer_probability:.0%}")
    return bool(key)


async def check_redis() -> bool:
    """Verify Redis connection."""
    from app.infra.redis import RedisClient, check_redis_health

    healthy = await check_redis_health()
    await RedisClient.close()

    if healthy:
        print_result("Redis", True, "Connection successful")
    else:
        print_result("Redis", False, "Connection failed (bookings kept in memory)")
    return healthy


async def check_service(name: str, url: str, path: str = "/health") -> bool:
    """Check an optional HTTP service is reachable."""
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(f"{url.rstrip('/')}{path}")
    except httpx.HTTPError:
        print_result(name, False, f"Not reachable at {url}")
        return False

    ok = response.status_code < 500
    print_result(name, ok, f"Responded with {response.status_code}")
    return ok


async def main() -> int:
    """Run all verification checks."""
    print("\n" + "="*60)
    print(" Provider Outreach - Setup Verification")
    print("="*60)

    print_header("Configuration")
    critical_ok = check_settings()

    print_header("Service Connections")
    await check_redis()  # Non-critical

    directory_url = os.getenv("PROVIDER_DIRECTORY_URL")
    if directory_url:
        await check_service("Provider directory", directory_url)

    voice_url = os.getenv("VOICE_SERVICE_URL")
    if voice_url:
        await check_service("Voice service", voice_url)

    print_header("Summary")
    if not critical_ok:
        print("\n  \033[91mCRITICAL: ANTHROPIC_API_KEY is required.\033[0m")
        print("  Add to .env: ANTHROPIC_API_KEY=sk-ant-...")
        print()
        return 1

    print("\n  \033[92mReady.\033[0m Start the application with:")
    print("    uvicorn app.main:app --reload")
    print()
    return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
