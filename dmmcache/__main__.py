import asyncio

from dmmcache.store_cli import main

if __name__ == "__main__":
    asyncio.run(main())
