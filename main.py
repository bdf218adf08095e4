"""Run the FastAPI app for the agent runtime."""

from __future__ import annotations

import logging
import os

import uvicorn
from fastapi import FastAPI

from src.routers import auth_router, chat_router


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Agent Runtime", version="0.1.0")
app.include_router(chat_router)
app.include_router(auth_router)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
    )
