import os

from dotenv import load_dotenv

load_dotenv()

# Absolute path to project root
basedir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

DATABASE_URL = os.getenv("DATABASE_URL")

# One event log file per run lands here
WORKFLOW_LOG_DIR = os.getenv("WORKFLOW_LOG_DIR", "logs")

# Uploaded PDFs and import manifests
UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(basedir, "uploads"))
MANIFEST_DIR = os.getenv("MANIFEST_DIR", os.path.join(basedir, "Data", "Processed", "manifests"))

# AI item extraction service (PDF in, productos JSON out)
ITEM_EXTRACTOR_URL = os.getenv("ITEM_EXTRACTOR_URL")
ITEM_EXTRACTOR_TIMEOUT_SECS = float(os.getenv("ITEM_EXTRACTOR_TIMEOUT_SECS", "120"))

# Course matching bands
MATCH_MIN_SCORE = int(os.getenv("MATCH_MIN_SCORE", "80"))
MATCH_AUTO_APPLY_SCORE = int(os.getenv("MATCH_AUTO_APPLY_SCORE", "95"))

# Optimistic concurrency retries per course document
STORE_RETRY_ATTEMPTS = int(os.getenv("STORE_RETRY_ATTEMPTS", "3"))


def require_database_url() -> str:
    if not DATABASE_URL:
        raise RuntimeError("DATABASE_URL is not set. Set it to your SQLAlchemy URL.")
    return DATABASE_URL
