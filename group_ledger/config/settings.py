import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration"""

    # Firebase settings
    FIREBASE_CREDENTIALS = os.getenv('FIREBASE_CREDENTIALS', '')
    FIREBASE_PROJECT_ID = os.getenv('FIREBASE_PROJECT_ID', '')

    # Currency display
    DEFAULT_CURRENCY = os.getenv('DEFAULT_CURRENCY', 'INR')
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '₹')

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    # API server
    API_HOST = os.getenv('API_HOST', '127.0.0.1')
    API_PORT = int(os.getenv('API_PORT', '8000'))
