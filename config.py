import os
from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv('SUPABASE_URL')
SUPABASE_KEY = os.getenv('SUPABASE_KEY')
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379')
ANSWERS_WEBHOOK_URL = os.getenv('ANSWERS_WEBHOOK_URL', '')
WEBHOOK_TIMEOUT_SEC = float(os.getenv('WEBHOOK_TIMEOUT_SEC', '20'))
SESSION_TTL_SEC = int(os.getenv('SESSION_TTL_SEC', '28800'))  # 8 hours
SUBMIT_LATCH_TTL_SEC = int(os.getenv('SUBMIT_LATCH_TTL_SEC', '300'))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
