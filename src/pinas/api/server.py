from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pinas.api.routers import packages
from pinas.config import config

app = FastAPI(
    title="PiNAS API",
    description="Package installation engine for the PiNAS appliance.",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials="*" not in config.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(packages.router)
