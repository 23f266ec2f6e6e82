"""Launch a PostGIS Docker container seeded with several tenant databases for pgmulti."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pgmulti.config import CONFIG_FILE, ConnectionProfileConfig, load_config, save_config

DEFAULT_CONTAINER = "pgmulti-sample-db"
DEFAULT_PORT = 5544
DEFAULT_PASSWORD = "pgmulti"
DEFAULT_USER = "pgmulti"
DEFAULT_TENANTS = ("tenant_north", "tenant_south", "tenant_east")
DOCKER_IMAGE = "postgis/postgis:16-3.4-alpine"
PROFILE_ID = "docker-sample"

TENANT_SQL = """
CREATE EXTENSION IF NOT EXISTS postgis;
CREATE TABLE IF NOT EXISTS stores (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    revenue NUMERIC(12,2) NOT NULL,
    rating REAL,
    location geometry(Point, 4326)
);
INSERT INTO stores (name, revenue, rating, location)
SELECT 'Store ' || g, (random()*10000)::numeric(12,2), (random()*5)::real,
       ST_SetSRID(ST_MakePoint(random()*10, random()*10), 4326)
FROM generate_series(1, 5) AS g;
""".strip()


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(name: str, port: int, password: str, user: str) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(
            [
                "docker",
                "run",
                "-d",
                "--name",
                name,
                "-e",
                f"POSTGRES_PASSWORD={password}",
                "-e",
                f"POSTGRES_USER={user}",
                "-p",
                f"{port}:5432",
                DOCKER_IMAGE,
            ]
        )
    wait_for_start(name, user)


def wait_for_start(name: str, user: str, retries: int = 20, delay: float = 1.0) -> None:
    for _ in range(retries):
        result = subprocess.run(["docker", "exec", name, "pg_isready", "-U", user], text=True)
        if result.returncode == 0:
            return
        time.sleep(delay)
    print("Warning: database did not report ready state; continuing anyway.")


def psql(name: str, user: str, database: str, sql: str, *, check: bool = True) -> None:
    run(
        ["docker", "exec", "-i", name, "psql", "-U", user, "-d", database, "-v", "ON_ERROR_STOP=1"],
        input=sql,
        check=check,
    )


def seed_tenants(name: str, user: str, tenants: list[str]) -> None:
    for tenant in tenants:
        # CREATE DATABASE has no IF NOT EXISTS; a rerun just reports the duplicate.
        psql(name, user, "postgres", f'CREATE DATABASE "{tenant}";', check=False)
        psql(name, user, tenant, TENANT_SQL)


def update_config(port: int, user: str, password: str) -> None:
    config = load_config()
    if any(profile.id == PROFILE_ID for profile in config.profiles):
        print(f"Profile '{PROFILE_ID}' already present in config; leaving as-is.")
        return
    profile = ConnectionProfileConfig(
        id=PROFILE_ID,
        name="Docker Sample",
        host="localhost",
        port=port,
        user=user,
        password=password,
        save_password=True,
    )
    save_config(config.with_profile(profile).with_active_profile(profile.name))
    print(f"Added 'Docker Sample' profile to {CONFIG_FILE}.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port to expose Postgres on")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="Postgres password")
    parser.add_argument("--user", default=DEFAULT_USER, help="Database user")
    parser.add_argument(
        "--tenant",
        action="append",
        dest="tenants",
        help="Tenant database to create (repeatable)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    tenants = args.tenants or list(DEFAULT_TENANTS)
    try:
        start_container(args.container, args.port, args.password, args.user)
        seed_tenants(args.container, args.user, tenants)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    update_config(args.port, args.user, args.password)
    print(f"Sample databases ready: {', '.join(tenants)}. Run `python -m pgmulti` and pick the 'Docker Sample' profile.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
