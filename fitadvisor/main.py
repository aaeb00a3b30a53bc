from fastapi import FastAPI

from fitadvisor.api.ai import router as ai_router
from fitadvisor.api.progress import router as progress_router
from fitadvisor.db.session import create_tables

app = FastAPI(title="FitAdvisor")


@app.on_event("startup")
def on_startup() -> None:
    create_tables()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api")
def api_root() -> dict[str, str]:
    return {"service": "FitAdvisor API", "status": "ok"}


app.include_router(ai_router)
app.include_router(progress_router)
