"""Retrieval and enrichment constants."""

# Canonical embedding dimension (text-embedding-004)
EMBEDDING_DIMENSIONS = 768

# Explicit search screen
SEARCH_TOP_K_DEFAULT = 20
SEARCH_MIN_SIMILARITY_DEFAULT = 0.0

# Conversational grounding; below 0.3 matches are noise for this embedding family
GROUNDING_TOP_K_DEFAULT = 5
GROUNDING_MIN_SIMILARITY_DEFAULT = 0.3

# Chat context
CONVERSATION_WINDOW_DEFAULT = 6

# Similarity bands shown next to search results
RELEVANCE_HIGH_THRESHOLD = 0.7
RELEVANCE_MEDIUM_THRESHOLD = 0.4

# Post-processing
ENRICHMENT_MAX_ATTEMPTS_DEFAULT = 3
ENRICHMENT_RETRY_DELAY_SECONDS_DEFAULT = 2.0
BACKFILL_INTERVAL_MINUTES_DEFAULT = 15
BACKFILL_BATCH_SIZE = 50

# Summary fallback
SUMMARY_MIN_SENTENCE_LENGTH = 20
SUMMARY_INPUT_LIMIT = 4000
SUMMARY_DEFAULT_TEXT = "Summary generated from transcript"
DEFAULT_MEMORY_TITLE = "Memory"

# In-process state bounds (least recently used entries are dropped)
SESSION_CACHE_MAX_USERS = 1000
CHAT_SESSIONS_MAX = 1000
