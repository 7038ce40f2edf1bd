import logging

from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie

from textile_dashboard.core.setting import config
from textile_dashboard.core.models.production_dashboard import ProductionDashboard

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = [
    ProductionDashboard,
]

motor_client = None

async def connect_to_mongo():
    global motor_client

    motor_client = AsyncIOMotorClient(str(config.MONGODB_URL))

    # Initialize Beanie with the database and the list of document models
    await init_beanie(
        database=motor_client[config.DATABASE_NAME],
        document_models=DOCUMENT_MODELS,
    )
    logger.info(f"Successfully connected to MongoDB at {config.DATABASE_NAME}")

async def close_mongo_connection():
    global motor_client
    if motor_client:
        motor_client.close()
        motor_client = None
    logger.info("Closed MongoDB connection")
