import os

from dotenv import load_dotenv

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "Relay Chat")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8080"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Protocol-level ping handled by uvicorn; there is no application reaper.
WS_PING_INTERVAL = float(os.getenv("WS_PING_INTERVAL", "20"))

# Frames queued for one peer before it is considered dead.
OUTBOX_MAX_FRAMES = int(os.getenv("OUTBOX_MAX_FRAMES", "1000"))

HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", "100"))
MAX_MESSAGE_CHARS = int(os.getenv("MAX_MESSAGE_CHARS", "4000"))
USERNAME_MAX_CHARS = int(os.getenv("USERNAME_MAX_CHARS", "32"))
AVATAR_URL_TEMPLATE = os.getenv(
    "AVATAR_URL_TEMPLATE", "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"
)

DEFAULT_ROOM_ID = os.getenv("DEFAULT_ROOM_ID", "general")
BOOTSTRAP_ROOMS = [
    {"id": "general", "name": "General", "description": "General discussion for everyone"},
    {"id": "random", "name": "Random", "description": "Random thoughts and conversations"},
    {"id": "tech-talk", "name": "Tech Talk", "description": "Technology discussions and help"},
    {"id": "announcements", "name": "Announcements", "description": "Important announcements"},
]
DEFAULT_ROOM_DESCRIPTION = "Custom room"
DELETED_PLACEHOLDER = "[Message deleted]"
