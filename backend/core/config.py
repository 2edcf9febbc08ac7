"""
Core configuration and constants for the GDrive Stremio addon backend.
"""
import os
import json

# Addon identity
ADDON_ID = os.environ.get("ADDON_ID", "community.gdrive")
ADDON_NAME = os.environ.get("ADDON_NAME", "GDrive")
ADDON_VERSION = "1.1.0"
BASE_URL = os.environ.get("BASE_URL", "http://127.0.0.1:3000").rstrip("/")
FOLDER_POSTER_URL = "https://i.imgur.com/G4A4B1a.png"
ADDON_LOGO_URL = (
    "https://upload.wikimedia.org/wikipedia/commons/thumb/1/12/"
    "Google_Drive_icon_%282020%29.svg/2295px-Google_Drive_icon_%282020%29.svg.png"
)

# Google endpoints
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
TOKEN_URL = "https://oauth2.googleapis.com/token"
DRIVE_SCOPE = "https://www.googleapis.com/auth/drive.readonly"
FOLDER_MIME = "application/vnd.google-apps.folder"

# Outbound API behaviour
API_TIMEOUT_MS = int(os.environ.get("API_TIMEOUT_MS", "30000"))
API_MAX_ATTEMPTS = int(os.environ.get("API_MAX_ATTEMPTS", "4"))
RETRY_BASE_MS = int(os.environ.get("RETRY_BASE_MS", "500"))

# Token minting
TOKEN_LIFETIME_SECONDS = min(int(os.environ.get("TOKEN_LIFETIME_SECONDS", "3600")), 3600)  # Google rejects > 1h
TOKEN_SAFETY_MARGIN_SECONDS = max(int(os.environ.get("TOKEN_SAFETY_MARGIN_SECONDS", "30")), 30)

# Cache configuration
LIST_CACHE_TTL = int(os.environ.get("LIST_CACHE_TTL", "300"))  # 5 minutes
META_CACHE_TTL = int(os.environ.get("META_CACHE_TTL", "600"))  # 10 minutes
REDIS_URL = os.environ.get("REDIS_URL", "")

# Listing / catalog bounds
LIST_MAX_ITEMS = int(os.environ.get("LIST_MAX_ITEMS", "5000"))
LIST_PAGE_SIZE = 1000  # Drive maximum
RECENTS_LIMIT = 100
MAX_FOLDER_DEPTH = int(os.environ.get("MAX_FOLDER_DEPTH", "10"))

# Credentials
SERVICE_ACCOUNTS_DIR = os.environ.get("SERVICE_ACCOUNTS_DIR", "data/accounts")
SERVICE_ACCOUNTS_JSON = os.environ.get("SERVICE_ACCOUNTS_JSON", "")
GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.environ.get("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REFRESH_TOKEN = os.environ.get("GOOGLE_REFRESH_TOKEN", "")


def parse_root_folders(raw: str) -> list[dict]:
    """
    Parse the ROOT_FOLDERS setting.

    Accepts either a JSON list of {"id": ..., "name": ...} objects or the
    shorthand "id:Name,id2:Other Name". Entries without an id are dropped.
    """
    raw = (raw or "").strip()
    if not raw:
        return []
    if raw.startswith("["):
        try:
            items = json.loads(raw)
        except ValueError:
            return []
        return [
            {"id": str(i["id"]), "name": str(i.get("name") or i["id"])}
            for i in items
            if isinstance(i, dict) and i.get("id")
        ]
    folders = []
    for part in raw.split(","):
        folder_id, _, name = part.strip().partition(":")
        if folder_id:
            folders.append({"id": folder_id, "name": name.strip() or folder_id})
    return folders


ROOT_FOLDERS = parse_root_folders(os.environ.get("ROOT_FOLDERS", ""))
