#!/usr/bin/env python3
"""
PostReader FastAPI Server

Accepts posts for text-to-speech conversion, processes them asynchronously
through an at-least-once event bus and serves job status and audio.
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from postreader.config import APP_NAME, APP_VERSION, LOG_LEVEL, SERVER_HOST, SERVER_PORT
from postreader.database import init_db, close_db
from postreader.services.event_bus import JOB_CREATED, get_event_bus
from postreader.services.reconciler import get_reconciler
from postreader.services.synthesizer import get_synthesizer
from postreader.services.worker import get_synthesis_worker
from postreader.routers import health_router, voices_router, posts_router, artifacts_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Startup:
        - Initialize database and create tables
        - Load TTS model (if available/cached)
        - Subscribe the synthesis worker and start the event bus
        - Start the reconciliation sweep

    Shutdown:
        - Stop the sweep and the event bus
        - Clean up model resources
        - Close database connections
    """
    print(f'Starting {APP_NAME} v{APP_VERSION}...')

    print('Initializing database...')
    await init_db()

    print('Checking for TTS model...')
    synthesizer = get_synthesizer()
    try:
        synthesizer.load_model()
        print(f'Model loaded! Available voices: {", ".join(synthesizer.get_voice_ids())}')
    except Exception as e:
        # Jobs fail with a conversion error until a model is available
        print(f'Model not loaded: {e}')

    print('Starting synthesis workers...')
    bus = get_event_bus()
    bus.subscribe(JOB_CREATED, get_synthesis_worker().handle_event)
    await bus.start()

    reconciler = get_reconciler()
    await reconciler.start()

    print(f'Server ready at http://{SERVER_HOST}:{SERVER_PORT}')
    print('API documentation available at /docs')

    yield

    print('Shutting down...')

    await reconciler.stop()
    await bus.stop()
    synthesizer.cleanup()
    await close_db()

    print('Shutdown complete.')


# Create FastAPI application
app = FastAPI(
    title=APP_NAME,
    description='Asynchronous text-to-speech publishing for posts.',
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_methods=['*'],
    allow_headers=['*'],
)

# Register routers
app.include_router(health_router)
app.include_router(voices_router)
app.include_router(posts_router)
app.include_router(artifacts_router)


def main():
    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    uvicorn.run(
        app,
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=False,
        log_level=LOG_LEVEL,
    )


if __name__ == '__main__':
    main()
