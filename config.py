import os

from dotenv import load_dotenv

load_dotenv()

# Base directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Paths
LOG_FILE = os.getenv("LOG_FILE", os.path.join(BASE_DIR, "launch.log"))

# Server
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
SESSION_TTL = int(os.getenv("SESSION_TTL", str(4 * 3600)))  # browser session lifetime (s)
SESSION_CLEANUP_INTERVAL = 300

# Exam
EXAM_DURATION_SECONDS = int(os.getenv("EXAM_DURATION_SECONDS", str(180 * 60)))  # 3 hours
QUESTIONS_PER_TEST = int(os.getenv("QUESTIONS_PER_TEST", "65"))
TICK_INTERVAL_SECONDS = float(os.getenv("TICK_INTERVAL_SECONDS", "1.0"))
TIME_WARNING_THRESHOLDS = (60 * 60, 30 * 60, 10 * 60, 5 * 60, 60)
PASS_PERCENTAGE = 50

# Lifecycle
INIT_MAX_ATTEMPTS = int(os.getenv("INIT_MAX_ATTEMPTS", "3"))
SUBMIT_TIMEOUT_SECONDS = float(os.getenv("SUBMIT_TIMEOUT_SECONDS", "30"))
HEARTBEAT_INTERVAL_SECONDS = float(os.getenv("HEARTBEAT_INTERVAL_SECONDS", "30"))

# Supabase (unset -> built-in sample question bank, in-memory persistence)
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")
