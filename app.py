import os
import logging
from flask import Flask
from flask_cors import CORS
import redis
from dotenv import load_dotenv

load_dotenv() # Load environment variables from .env file BEFORE importing routes

import config
import routes
from backend import Backend

logger = logging.getLogger(__name__)


def create_app():
    app = Flask(__name__)
    CORS(app, expose_headers=[routes.SESSION_HEADER])

    logging.basicConfig(
        level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    # The hosted backend is mandatory: every data operation goes through it
    supabase_url = os.environ.get('SUPABASE_URL')
    supabase_key = os.environ.get('SUPABASE_KEY')
    if not supabase_url or not supabase_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set. Please create a .env file or set the environment variables.")

    app.config.update(
        ANSWERS_WEBHOOK_URL=os.environ.get('ANSWERS_WEBHOOK_URL', config.ANSWERS_WEBHOOK_URL),
        WEBHOOK_TIMEOUT_SEC=config.WEBHOOK_TIMEOUT_SEC,
        SESSION_TTL_SEC=config.SESSION_TTL_SEC,
        SUBMIT_LATCH_TTL_SEC=config.SUBMIT_LATCH_TTL_SEC,
    )

    # Connect to Redis from the environment variable
    redis_url = os.environ.get('REDIS_URL', config.REDIS_URL)
    try:
        r = redis.from_url(redis_url, decode_responses=True)
        r.ping() # Check connection
        logger.info("Successfully connected to Redis.")
    except (redis.exceptions.ConnectionError, TypeError) as e:
        logger.error("Could not connect to Redis: %s", e)
        r = None

    # Initialize routes
    routes.init_app(app, r, Backend(supabase_url, supabase_key))

    return app

if __name__ == '__main__':
    app = create_app()
    app.run(port=5001, debug=True)
