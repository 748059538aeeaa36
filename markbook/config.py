"""
Configuration management for Markbook.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Base paths
BASE_DIR = Path(__file__).parent.parent
PACKAGE_DIR = Path(__file__).parent

# Local data
HOME_DIR = Path.home()
DEFAULT_DATA_FILE = str(HOME_DIR / ".markbook_data" / "markbook.json")
DATA_FILE = os.getenv("MARKBOOK_DATA_FILE", DEFAULT_DATA_FILE)

# API client configuration
API_URL = os.getenv("MARKBOOK_API_URL", "http://localhost:3000/api")
REQUEST_TIMEOUT = float(os.getenv("MARKBOOK_REQUEST_TIMEOUT", "15"))

# Server configuration
JWT_SECRET = os.getenv("MARKBOOK_JWT_SECRET", "")
JWT_AUDIENCE = "authenticated"
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
DEBUG = os.getenv("DEBUG", "false").lower() in ("1", "true", "yes")

# Markbook configuration
ASSESSMENT_TYPES = ['Quiz', 'Homework', 'Project', 'Test', 'Exam']
LOW_SCORE_THRESHOLD = float(os.getenv("MARKBOOK_LOW_SCORE_THRESHOLD", "50"))
POOR_AVERAGE = 50
WARNING_AVERAGE = 70


class Config:
    """Application configuration class."""

    def __init__(self):
        self.api_url = API_URL
        self.request_timeout = REQUEST_TIMEOUT
        self.data_file = DATA_FILE
        self.jwt_secret = JWT_SECRET
        self.low_score_threshold = LOW_SCORE_THRESHOLD

    def to_dict(self):
        return {
            "api_url": self.api_url,
            "request_timeout": self.request_timeout,
            "data_file": self.data_file,
            "jwt_secret": self.jwt_secret,
            "low_score_threshold": self.low_score_threshold,
        }

    def update(self, data: dict):
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)


# Global config instance
config = Config()
