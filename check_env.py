#!/usr/bin/env python3
"""Helper script to check and create the .env file for the matching API."""

from pathlib import Path
import os
import sys

TEMPLATE = """# Supabase Configuration (optional - without it documents live in memory)
# Get these from: https://supabase.com/dashboard → Your Project → Settings → API
GNG_SUPABASE_URL=https://your-project-id.supabase.co
GNG_SUPABASE_KEY=your-service-role-key-here

# API Configuration
GNG_API_PREFIX=/api
# GNG_FRONTEND_ALLOWED_ORIGINS - JSON array or comma-separated list

# Reference data (used when the store holds no stations)
GNG_STATIONS_FILE=./data/stations.csv
GNG_TRAVEL_TIMES_FILE=./data/travel_times.csv

# Matching
GNG_MATCHING_TIMEOUT_SECONDS=30
GNG_MAX_MATCH_RETRIES=3
GNG_SEARCH_DETOUR_LIMITS=10,20,30,45

# Push sender webhook (optional)
# GNG_NOTIFICATION_WEBHOOK_URL=https://push.example.com/events
"""


def _mask(line: str) -> str:
    name, _, value = line.partition("=")
    value = value.strip()
    if "KEY" in name and len(value) > 20:
        return f"{name}={value[:20]}...{value[-10:]}"
    return line


def main():
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    print("=" * 60)
    print("가는길에 Environment Checker")
    print("=" * 60)
    print()

    if not env_file.exists():
        print(f"❌ .env file NOT found at: {env_file}")
        env_file.write_text(TEMPLATE, encoding="utf-8")
        print(f"✅ Created template .env file at: {env_file}")
        print("⚠️  Edit it and add your Supabase credentials if you want persistent storage.")
        return

    print(f"✅ Found .env file at: {env_file}")
    print("-" * 60)
    for line in env_file.read_text(encoding="utf-8").splitlines():
        print(_mask(line) if "=" in line else line)
    print("-" * 60)
    print()

    for name in ("GNG_SUPABASE_URL", "GNG_SUPABASE_KEY", "GNG_NOTIFICATION_WEBHOOK_URL"):
        value = os.getenv(name)
        print(f"{'✅' if value else '➖'} {name} {'set in environment' if value else 'not set in environment'}")
    print()

    try:
        sys.path.insert(0, str(project_root / "src"))
        from ganeungil.config import settings
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        print("Make sure you're running this from the project root directory")
        return

    print(f"Stations file:      {settings.stations_file} ({'found' if settings.stations_file.exists() else 'missing'})")
    print(f"Travel times file:  {settings.travel_times_file} ({'found' if settings.travel_times_file.exists() else 'missing'})")
    print(f"Acceptance window:  {settings.matching_timeout_seconds}s x {settings.max_match_retries} retries")
    print(f"Detour limits:      {list(settings.search_detour_limits)}")
    print()
    if settings.supabase_url and settings.supabase_key:
        print("✅ Supabase is configured")
    else:
        print("➖ Supabase is NOT configured - the API will keep documents in memory")


if __name__ == "__main__":
    main()
