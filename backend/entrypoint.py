"""
Entrypoint for running the backend server.
Windows needs the selector event loop policy for the async database drivers.
"""
import asyncio
import sys

# Must be set before any asyncio operations
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from giftlist.main import app
import uvicorn

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
