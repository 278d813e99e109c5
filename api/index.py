import logging
from moviedb.main import app

# Basic logging so backend and auth failures show up in the platform logs
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

logger.info("Movie catalog api/index.py initialized")

# Serverless entry point: the platform serves the exported FastAPI app
