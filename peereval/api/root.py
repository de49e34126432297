from fastapi import APIRouter

router = APIRouter()

@router.get("/")
def root():
    return {
        "name": "Peer Evaluation Backend",
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
    }
