import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('APP_ENV', 'test')
os.environ.setdefault('SCHEDULER_ENABLED', 'false')
os.environ.setdefault('SECRET_KEY', 'test-secret')
os.environ.setdefault('PAYPAL_CLIENT_ID', '')
os.environ.setdefault('PAYPAL_CLIENT_SECRET', '')
os.environ.setdefault('GITHUB_TOKEN', '')
