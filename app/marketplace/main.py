from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
import logging
from sqlalchemy import text
from sqlalchemy.orm import Session

from marketplace.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

try:
    from marketplace.routers import users, categories, products, cart, orders
    from marketplace.database import engine, Base, get_db
    from marketplace import auth, models  # noqa: F401  (models registers the tables)
except ImportError as e:
    logger.error(f"Failed to import modules: {str(e)}")
    raise

# Create FastAPI app
app = FastAPI(
    title="Marketplace API",
    description="Second-hand marketplace: listings, cart, checkout and order history",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

limiter = auth.setup_limiter(app)

# Create database tables
try:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")
except Exception as e:
    logger.error(f"Failed to create database tables: {str(e)}")
    logger.warning("API will continue to run, but database operations may fail")

# Include routers
app.include_router(users.router, prefix=settings.API_PREFIX, tags=["auth"])
app.include_router(categories.router, prefix=settings.API_PREFIX, tags=["categories"])
app.include_router(products.router, prefix=settings.API_PREFIX, tags=["products"])
app.include_router(cart.router, prefix=settings.API_PREFIX, tags=["cart"])
app.include_router(orders.router, prefix=settings.API_PREFIX, tags=["orders"])

@app.get("/")
def read_root():
    return {
        "status": "ok",
        "message": "Marketplace API is running",
        "version": "1.0.0"
    }

@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    db_status = "connected"

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        db_status = "disconnected"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "database": db_status,
    }

if __name__ == "__main__":
    uvicorn.run(
        "marketplace.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
