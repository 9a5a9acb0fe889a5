import logging

import uvicorn

import config
from utils.logging_config import setup_logging, silence_sql_loggers

# Initialize centralized logging configuration
setup_logging()

from server import app

# Must run after the engine is created, SQLAlchemy resets logger levels on init
silence_sql_loggers()
logging.info("🔇 SQL loggers silenced (aiosqlite, sqlalchemy.*)")


def main() -> None:
    uvicorn.run(app, host=config.WEBAPP_HOST, port=config.WEBAPP_PORT)


if __name__ == '__main__':
    main()
