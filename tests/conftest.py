import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv


# ---------------------------------------------------------
# Load .env from project root (same folder as app.py)
# ---------------------------------------------------------
ROOT = Path(__file__).resolve().parents[1]  # project root
load_dotenv(ROOT / ".env", override=False)

# ---------------------------------------------------------
# Make tests deterministic:
# - no background scheduler loops
# - app-level DB goes to a throwaway sqlite file
# - no real tax service credentials from the environment
# ---------------------------------------------------------
os.environ["SYNC_ENABLED"] = "false"
os.environ.setdefault("DATABASE_URL", f"sqlite:///{Path(tempfile.gettempdir()) / 'taxsync_test_app.db'}")
for _name in ("TAX_SERVICE_TIN", "TAX_SERVICE_USERNAME", "TAX_SERVICE_PASSWORD"):
    os.environ.pop(_name, None)
