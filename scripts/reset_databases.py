#!/usr/bin/env python3
"""Reset the Genesis PostgreSQL schema.

Drops every genesis_* table and recreates them empty. The ledger goes too,
so point this at development databases only.

    python scripts/reset_databases.py          # 3 second grace period, then reset
    python scripts/reset_databases.py --yes    # no grace period
    python scripts/reset_databases.py --keep   # only create missing tables
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import asyncpg
from rich.console import Console

from src.genesis.config import load_config
from src.genesis.memory.storage.postgres import CREATE_TABLES_SQL, DROP_TABLES_SQL

console = Console()


async def reset_schema(drop: bool = True) -> bool:
    pg = load_config().memory.postgres_config
    target = f"{pg.host}:{pg.port}/{pg.database}"

    try:
        conn = await asyncpg.connect(
            host=pg.host,
            port=pg.port,
            database=pg.database,
            user=pg.user or None,
            password=pg.password or None,
        )
    except (OSError, asyncpg.PostgresError) as e:
        console.print(f"[red]✗ Cannot reach {target}: {e}[/red]")
        return False

    try:
        async with conn.transaction():
            if drop:
                await conn.execute(DROP_TABLES_SQL)
                console.print(f"  dropped genesis tables on {target}")
            await conn.execute(CREATE_TABLES_SQL)
            console.print(f"  created genesis tables on {target}")
    except asyncpg.PostgresError as e:
        console.print(f"[red]✗ Schema reset failed, nothing changed: {e}[/red]")
        return False
    finally:
        await conn.close()

    return True


async def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reset the Genesis PostgreSQL schema")
    parser.add_argument("--yes", action="store_true", help="skip the grace period")
    parser.add_argument("--keep", action="store_true", help="keep existing tables, only create missing ones")
    args = parser.parse_args(argv)

    if not args.keep:
        console.rule("[bold red]Genesis schema reset")
        console.print("Every graph, node, edge, embedding and ledger entry will be deleted.")
        if not args.yes:
            console.print("[dim]Ctrl+C within 3 seconds to cancel...[/dim]")
            try:
                await asyncio.sleep(3)
            except (KeyboardInterrupt, asyncio.CancelledError):
                console.print("Cancelled.")
                return 1

    ok = await reset_schema(drop=not args.keep)
    console.print("[green]✓ Done[/green]" if ok else "[red]✗ Failed[/red]")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
