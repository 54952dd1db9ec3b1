"""
XPlay video platform core

Pluggable storage (in-memory, DynamoDB, relational), rule-based content
tagging and recommendations for a video-sharing site.
"""

from .config import Settings, configure_logging, load_settings
from .content_tagging import apply_tagging, extract_keywords, suggest_related_content_ids, tag_content
from .dashboard import get_dashboard_stats
from .exceptions import ConfigurationError, DuplicateUserError, StorageError, XPlayError
from .recommendation_engine import RecommendationEngine
from .storage import DynamoDBStorage, MemoryStorage, RelationalStorage, Storage, create_storage

__version__ = "0.1.0"
