import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bloodbridge.controllers.notification import router as notification_router
from bloodbridge.controllers.requests import router as requests_router
from bloodbridge.database.connection import AsyncSessionLocal, init_db
from bloodbridge.services.engine import NotificationEngine
from bloodbridge.services.push_gateway import FirebasePushGateway, init_firebase
from bloodbridge.services.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="BloodBridge API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(requests_router, prefix="/api/requests", tags=["requests"])
app.include_router(notification_router, prefix="/api", tags=["notifications"])


@app.get("/")
async def root():
    return {"message": "BloodBridge API is running"}


@app.on_event("startup")
async def startup_event():
    await init_db()
    init_firebase()
    app.state.engine = NotificationEngine(AsyncSessionLocal, FirebasePushGateway())
    start_scheduler(app.state.engine.store)


@app.on_event("shutdown")
async def shutdown_event():
    await stop_scheduler()
