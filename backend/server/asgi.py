"""
ASGI entry point for the voice relay.

    uvicorn server.asgi:app --app-dir backend --port 3001

`.env` is loaded before AppConfig reads the environment, so GEMINI_API_KEY
and friends can live there in development.
"""

from dotenv import load_dotenv

load_dotenv()

from config import AppConfig  # pylint: disable=wrong-import-position
from server.app import create_app  # pylint: disable=wrong-import-position

app = create_app(AppConfig.load_from_env())
