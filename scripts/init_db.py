import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from course_rag.db import async_engine, init_models


async def main():
    print("Creating pgvector extension and tables...")
    await init_models()
    await async_engine.dispose()
    print("Done.")

if __name__ == "__main__":
    asyncio.run(main())
