from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shuttle.config import settings
from shuttle.database import Base, engine
from shuttle.exceptions import ShuttleError
from shuttle.stops import router as stops_router
from shuttle.routes import router as routes_router
from shuttle.bookings import student_router as student_bookings_router
from shuttle.bookings import admin_router as admin_bookings_router
from shuttle.wallets import student_router as student_wallet_router
from shuttle.wallets import admin_router as admin_wallets_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("%s started (%s)", settings.PROJECT_NAME, settings.ENVIRONMENT)
    yield

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="University Shuttle System API",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(ShuttleError)
async def shuttle_error_handler(request: Request, exc: ShuttleError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "error": exc.code},
    )

# Include routers
app.include_router(
    stops_router,
    prefix=f"{settings.API_PREFIX}/stops",
    tags=["Stops"]
)

app.include_router(
    routes_router,
    prefix=f"{settings.API_PREFIX}/routes",
    tags=["Route Planning"]
)

app.include_router(
    student_bookings_router,
    prefix=f"{settings.API_PREFIX}/student/bookings",
    tags=["Bookings"]
)

app.include_router(
    admin_bookings_router,
    prefix=f"{settings.API_PREFIX}/admin/bookings",
    tags=["Admin Bookings"]
)

app.include_router(
    student_wallet_router,
    prefix=f"{settings.API_PREFIX}/student/wallet",
    tags=["Wallet"]
)

app.include_router(
    admin_wallets_router,
    prefix=f"{settings.API_PREFIX}/admin/wallets",
    tags=["Admin Wallets"]
)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": "University Shuttle System API",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
