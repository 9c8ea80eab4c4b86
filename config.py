import os
from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# .env.local wins over .env, real environment wins over both
load_dotenv(os.path.join(BASE_DIR, '.env.local'))
load_dotenv(os.path.join(BASE_DIR, '.env'))

DEFAULT_API_HOST = 'social-media-video-downloader.p.rapidapi.com'

RAPID_API_KEY = os.getenv('RAPID_API_KEY')
RAPID_API_HOST = os.getenv('RAPID_API_HOST') or DEFAULT_API_HOST

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
HOST = os.getenv('HOST', '0.0.0.0')
PORT = int(os.getenv('PORT', 5000))
DEBUG = os.getenv('FLASK_DEBUG', '').lower() in ('1', 'true', 'yes')
