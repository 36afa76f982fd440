import sys
import logging
import uvicorn
from dotenv import load_dotenv

from src.api.app import create_app
from src.config import Settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

def main():
    # Load environment variables from .env file
    load_dotenv()

    try:
        settings = Settings.from_env()
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    logging.getLogger().setLevel(settings.log_level)

    app = create_app(settings)

    logger.info(f"Server running on port {settings.port}")
    logger.info(f"Health check: http://localhost:{settings.port}/api/health")

    # uvicorn runs the app lifespan on SIGINT/SIGTERM, which closes the pool before exit
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())

if __name__ == "__main__":
    main()
