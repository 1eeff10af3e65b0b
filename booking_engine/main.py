from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from booking_engine.core.config import settings
from booking_engine.core.errors import BookingEngineError
from booking_engine.api import slots, bookings
from booking_engine.core.logger import setup_logging, logger
from contextlib import asynccontextmanager
from datetime import datetime

setup_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🚀 Starting Advisor Booking Engine")
    yield
    # Shutdown
    logger.info("🛑 Shutting down booking engine")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan
)

@app.exception_handler(BookingEngineError)
async def booking_error_handler(request: Request, exc: BookingEngineError):
    if exc.status_code >= 500:
        logger.error(f"🔥 {exc.kind} fault on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(status_code=422, content={"kind": "Validation", "message": problems})

# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"🔥 UNHANDLED ERROR: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={"kind": "Internal", "message": "An unexpected error occurred. Please contact support."}
    )

# Include routers
app.include_router(slots.router, tags=["Slots"])
app.include_router(bookings.router, tags=["Bookings"])

@app.get("/health")
async def health_check():
    return {"status": "ok", "environment": settings.ENVIRONMENT, "timestamp": datetime.now().isoformat()}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("booking_engine.main:app", host="0.0.0.0", port=settings.PORT, reload=True)
