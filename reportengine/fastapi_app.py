from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reportengine.modules.logger import error
from reportengine.modules.reports.fastapi_reports import router as reports_router
from reportengine.modules.reports.report_config import ReportEngineConfig

config = ReportEngineConfig()

app = FastAPI(title="Report Engine (FastAPI)", version="1.0.0")

# Exact origins are required when credentials are allowed
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Last-resort handler: logs the error and returns a generic response.
    """
    error(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred"},
    )


@app.get("/health")
async def health_check():
    """
    Simple health check endpoint used for smoke testing the FastAPI app.
    """
    return {"status": "ok"}


@app.get("/")
async def root():
    return {"status": "ok", "message": "Report Engine (FastAPI) is running", "health": "/health"}


app.include_router(reports_router, prefix="/api")


# Run with:
#       uvicorn reportengine.fastapi_app:app --reload --host 0.0.0.0 --port 8000
