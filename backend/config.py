import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
PARENT_DIR = os.path.dirname(BASE_DIR)
TEMPLATE_DIR = os.path.join(PARENT_DIR, 'frontend')
STATIC_DIR = os.path.join(PARENT_DIR, 'static')


def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Flask configuration for the quiz server."""

    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-music-quiz-secret')  # Use env var in production

    # Spotify endpoints
    SPOTIFY_TOKEN_URL = os.environ.get('SPOTIFY_TOKEN_URL', 'https://accounts.spotify.com/api/token')
    SPOTIFY_API_BASE = os.environ.get('SPOTIFY_API_BASE', 'https://api.spotify.com')
    SPOTIFY_REQUEST_TIMEOUT = float(os.environ.get('SPOTIFY_REQUEST_TIMEOUT', '10'))

    # Quiz pacing
    ADVANCE_DELAY_SECONDS = float(os.environ.get('ADVANCE_DELAY_SECONDS', '1.5'))
    SKIP_TRACKS_WITHOUT_PREVIEW = _env_flag('SKIP_TRACKS_WITHOUT_PREVIEW', True)

    # Engines kept in memory at once, one per browser
    QUIZ_REGISTRY_MAX_SIZE = int(os.environ.get('QUIZ_REGISTRY_MAX_SIZE', '1000'))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


def spotify_credentials():
    """Client id/secret pair, read on every call so rotated secrets apply without a restart."""
    return os.environ.get('SPOTIFY_CLIENT_ID'), os.environ.get('SPOTIFY_CLIENT_SECRET')
