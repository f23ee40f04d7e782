from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import DATA_FILE, DEBUG, cors_origins
from .routes import router
from .scheduler.preview import SchedulingService
from .scheduler.schemas import SchedulerSettings
from .state import LocalStore


def create_app(store: Optional[LocalStore] = None,
               settings: Optional[SchedulerSettings] = None) -> FastAPI:
  store = store if store is not None else LocalStore(DATA_FILE)
  app = FastAPI(title="timeblocking", version="0.1.0")
  app.state.store = store
  app.state.scheduler = SchedulingService(store, store, store, settings=settings)
  if cors_origins:
    app.add_middleware(CORSMiddleware,
                       allow_origins=cors_origins,
                       allow_credentials=True,
                       allow_methods=["*"],
                       allow_headers=["*"])
  app.include_router(router)
  return app


app = create_app()


def main() -> None:
  import uvicorn

  logging.basicConfig(level=logging.DEBUG if DEBUG else logging.INFO)
  host = os.getenv("HOST", "127.0.0.1")
  port = int(os.getenv("PORT", "8000"))
  uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
  main()
