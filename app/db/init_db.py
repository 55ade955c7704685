import asyncio
import logging
from app.core.database import engine, async_session_maker
from app.core.logging_config import setup_logging
from app.models.base import Base
import app.models  # noqa: F401  registers the tables on Base.metadata

logger = logging.getLogger(__name__)

async def create_tables():
    """Create all database tables"""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("✅ Database tables created successfully")

    except Exception as e:
        logger.error(f"❌ Error creating tables: {str(e)}")
        raise

async def init_db(seed: bool = True):
    """Create tables and seed the system permissions, roles and menus"""
    try:
        logger.info("🗄️  Initializing database...")

        await create_tables()

        if seed:
            from app.db.seeds.init_rbac_data import seed_rbac
            async with async_session_maker() as session:
                await seed_rbac(session)

        logger.info("✅ Database initialized successfully")

    except Exception as e:
        logger.error(f"❌ Database initialization failed: {str(e)}")
        raise

if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_db())
