__version__ = "0.3.0"
__description__ = "sarest : JSON:API request handling for SQLAlchemy models"
