"""Application factory.

    uvicorn chat_core.api.app:app
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from chat_core.api.errors import register_exception_handlers
from chat_core.api.routes import router
from chat_core.api.service import ChatContainer, build_default_container
from chat_core.config.settings import settings as default_settings


def create_app(container: Optional[ChatContainer] = None, settings=default_settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.container is None:
            app.state.container = build_default_container(settings)
        await app.state.container.start()
        try:
            yield
        finally:
            await app.state.container.close()

    app = FastAPI(title="Chat Core API", version="v1", lifespan=lifespan)
    app.state.container = container
    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()
