from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from peereval.api.activities import router as activities_router
from peereval.api.audit import router as audit_router
from peereval.api.health import router as health_router
from peereval.api.participants import router as participants_router
from peereval.api.root import router as root_router
from peereval.api.sessions import router as sessions_router
from peereval.api.users import router as users_router
from peereval.core.config import settings
from peereval.core.errors import AppError
from peereval.core.log_config import configure_logging

configure_logging()

app = FastAPI(title="Peer Evaluation Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


app.include_router(root_router)
app.include_router(health_router)
app.include_router(users_router)
app.include_router(activities_router)
app.include_router(participants_router)
app.include_router(sessions_router)
app.include_router(audit_router)
