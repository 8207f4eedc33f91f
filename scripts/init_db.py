# scripts/init_db.py
import argparse
import asyncio

from leadengine.db import engine
from leadengine.models import Base


async def main(reset: bool) -> None:
    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print(f"OK: {'recreated' if reset else 'created'} all tables (idempotent).")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--reset", action="store_true", help="Drop every table first (destroys data)")
    args = parser.parse_args()
    asyncio.run(main(args.reset))
