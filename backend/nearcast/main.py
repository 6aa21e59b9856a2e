"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nearcast.api import location, ops, posts, proximity
from nearcast.api.errors import install_error_handlers
from nearcast.infra import postgres
from nearcast.maintenance.sweep import SweepScheduler
from nearcast.obs import init as obs_init
from nearcast.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	scheduler: SweepScheduler | None = None
	if settings.sweep_enabled:
		scheduler = SweepScheduler()
		scheduler.start(interval_seconds=settings.sweep_interval_seconds)
	app.state.sweep_scheduler = scheduler
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await postgres.close_pool()


app = FastAPI(title="Nearcast", lifespan=lifespan)
install_error_handlers(app)

allow_origins = [origin for origin in settings.cors_allow_origins if origin != "*"]
if not allow_origins and settings.is_dev():
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

app.include_router(ops.router)
app.include_router(location.router, tags=["location"])
# Static paths (/posts/nearby, /posts/friends) must register before /posts/{post_id}.
app.include_router(proximity.router, tags=["proximity"])
app.include_router(posts.router, tags=["posts"])
