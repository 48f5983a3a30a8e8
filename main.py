from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional
import asyncio
import json
import logging

from app import models  # noqa: F401  (registers tables on Base.metadata)
from app.config.settings import WorkflowConfig
from app.database import Base, engine, get_db
from app.exceptions import WorkflowError
from app.routers import activity, features, notifications, tasks, timers
from app.schemas import UserSummary
from app.services.board import BoardSession, MoveOutcome
from app.services.websocket_manager import websocket_manager
from app.services.workflow import WorkflowServices, get_workflow
from app.utils.auth import user_from_token

logging.basicConfig(
    level=WorkflowConfig.LOGGING['level'],
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Task Workflow API")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=WorkflowConfig.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Route registration
app.include_router(tasks.router)
app.include_router(features.router)
app.include_router(timers.router)
app.include_router(activity.router)
app.include_router(notifications.router)

# Engine errors -> HTTP
@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.reason}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Create tables and remember the loop used for notification pushes"""
    logger.info("Starting Task Workflow API...")
    Base.metadata.create_all(bind=engine)
    websocket_manager.bind_loop(asyncio.get_running_loop())

# Root route
@app.get("/")
def read_root():
    return {"message": "Task Workflow API"}

@app.get("/health")
def health():
    connected_users = websocket_manager.get_connected_users()
    return {
        "status": "ok",
        "connected_users": len(connected_users),
        "websocket_connections": sum(websocket_manager.get_connection_count(user_id) for user_id in connected_users),
    }

# WebSocket endpoint for personal notifications
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = None, db: Session = Depends(get_db)):
    await websocket.accept()
    user = user_from_token(db, token)
    if user is None:
        logger.info("Rejected notification WebSocket without a valid token")
        await websocket.close(code=1008)
        return

    await websocket_manager.connect(websocket, user.id)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                received = json.loads(data)
            except json.JSONDecodeError:
                continue
            if received.get("type") == "ping":
                await websocket_manager.send_personal_message(
                    {"type": "pong", "timestamp": datetime.now().isoformat()}, websocket
                )
    except WebSocketDisconnect:
        websocket_manager.disconnect(websocket, user.id)

# WebSocket endpoint for the kanban board of one project
@app.websocket("/ws/projects/{project_id}/board")
async def board_websocket(
    websocket: WebSocket,
    project_id: str,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    workflow: WorkflowServices = Depends(get_workflow),
):
    await websocket.accept()
    user = user_from_token(db, token)
    if user is None:
        logger.info(f"Rejected board WebSocket for project {project_id} without a valid token")
        await websocket.close(code=1008)
        return

    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue = asyncio.Queue()

    def push_board(view):
        outbox.put_nowait({
            "type": "board",
            "epoch": board.authoritative_epoch,
            "tasks": [task.model_dump(mode="json") for task in view],
            "blocked_task_ids": sorted(board.blocked_ids()),
        })

    def push_error(message: str):
        outbox.put_nowait(websocket_manager.toast_message("error", "Move failed", message))

    board = BoardSession.for_engine(
        workflow.tasks, project_id, UserSummary(**user.summary()),
        on_error=push_error, on_change=push_board,
    )
    unsubscribe = board.attach(workflow.store, schedule=loop.call_soon_threadsafe)

    async def drain():
        while True:
            message = await outbox.get()
            await websocket_manager.send_personal_message(message, websocket)

    sender = asyncio.create_task(drain())
    try:
        while True:
            data = await websocket.receive_text()
            try:
                received = json.loads(data)
            except json.JSONDecodeError:
                outbox.put_nowait(websocket_manager.toast_message("error", "Invalid message", "Messages must be JSON."))
                continue
            if received.get("type") != "move":
                continue

            result = await board.move_task(str(received.get("task_id")), str(received.get("over_id")))
            # let scheduled snapshots land before reporting the outcome
            await asyncio.sleep(0)
            outbox.put_nowait({
                "type": "move_result",
                "task_id": result.task_id,
                "outcome": result.outcome.value,
                "status": result.status.value if result.status else None,
                "message": result.message,
            })
            if result.outcome == MoveOutcome.APPLIED:
                logger.info(f"User {user.id} moved task {result.task_id} to {result.status.value} on the board")
    except WebSocketDisconnect:
        logger.info(f"Board WebSocket for project {project_id} closed")
    finally:
        unsubscribe()
        sender.cancel()
