from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from src.config import settings
from src.database import Base, engine
from src.bookings import router as bookings_router
from src.checkins import router as checkins_router
from src.inventory import router as inventory_router
from src.pricing import router as pricing_router
from src.scheduler import ExpirySweeper

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)

    sweeper = ExpirySweeper()
    if settings.ENABLE_EXPIRY_SWEEPER:
        sweeper.start()
    app.state.sweeper = sweeper

    logger.info("%s started (%s)", settings.PROJECT_NAME, settings.ENVIRONMENT)
    yield

    await sweeper.stop()


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Event ticketing booking and check-in API",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # Web and staff app dev servers
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    bookings_router,
    prefix=f"{settings.API_V1_STR}/bookings",
    tags=["Bookings & Payments"]
)

app.include_router(
    checkins_router,
    prefix=settings.API_V1_STR,
    tags=["Check-In"]
)

app.include_router(
    inventory_router,
    prefix=settings.API_V1_STR,
    tags=["Ticket Inventory"]
)

app.include_router(
    pricing_router,
    prefix=settings.API_V1_STR,
    tags=["Coupons"]
)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": settings.PROJECT_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get(f"{settings.API_V1_STR}/health")
@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
