import motor.motor_asyncio
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from candidate_search.models.settings import load_settings
from candidate_search.utils.logging_config import get_logger

logger = get_logger(__name__)

STORE_SETTINGS = load_settings().store

# motor connects lazily; nothing touches the network until the first query
client = motor.motor_asyncio.AsyncIOMotorClient(
    STORE_SETTINGS.mongo_details,
    serverSelectionTimeoutMS=STORE_SETTINGS.server_selection_timeout_ms,
)
db = client[STORE_SETTINGS.db_name]
candidates_coll = db[STORE_SETTINGS.collection]

logger.info(f"MongoDB client ready for {STORE_SETTINGS.db_name}.{STORE_SETTINGS.collection}")


async def init_indexes():
    """Unique index on candidate_id. The vector search index is managed in Atlas, not here."""
    target = f"{STORE_SETTINGS.collection}.candidate_id"
    try:
        await candidates_coll.create_index([("candidate_id", ASCENDING)], unique=True)
    except PyMongoError as e:
        if "already exists" in str(e).lower():
            logger.debug(f"Index on {target} already exists")
            return
        logger.warning(f"Could not create unique index on {target}: {e}")
        return
    logger.info(f"Ensured unique index on {target}")
