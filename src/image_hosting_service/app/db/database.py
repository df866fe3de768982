from loguru import logger
from tortoise import Tortoise, connections

from ..core.config import get_settings

MODELS_MODULE = f"{__package__.rsplit('.', 1)[0]}.models"


def tortoise_db_url(database_url: str) -> str:
    # Tortoise spells sqlite file URLs with two slashes
    if database_url.startswith("sqlite:///"):
        return database_url.replace("sqlite:///", "sqlite://")
    return database_url


async def init_db(db_url: str | None = None):
    try:
        settings = get_settings()
        database_url = db_url or tortoise_db_url(settings.absolute_database_url)

        await Tortoise.init(
            db_url=database_url,
            modules={"models": [MODELS_MODULE]},
        )

        await Tortoise.generate_schemas()

        logger.info("Database initialized successfully")

    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        raise


async def close_db():
    try:
        await Tortoise.close_connections()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database: {e}")
        raise


async def check_database_health() -> bool:
    try:
        conn = connections.get("default")
        await conn.execute_query("SELECT 1")

        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
