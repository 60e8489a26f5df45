import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# API keys
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

# Text generation configuration
GENERATION_MODEL = os.getenv("GENERATION_MODEL", "gemini-1.5-flash")
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.2"))
GENERATION_MAX_OUTPUT_TOKENS = int(os.getenv("GENERATION_MAX_OUTPUT_TOKENS", "1024"))
AI_RETRY_ATTEMPTS = int(os.getenv("AI_RETRY_ATTEMPTS", "3"))

# Embedding configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "models/embedding-001")
VECTOR_SIZE = int(os.getenv("VECTOR_SIZE") or os.getenv("GEMINI_VECTOR_SIZE") or "768")
EMBEDDING_MAX_CHARS = int(os.getenv("EMBEDDING_MAX_CHARS", "10000"))
EMBEDDING_MAX_WORKERS = int(os.getenv("EMBEDDING_MAX_WORKERS", "4"))

# Resilience configuration
FALLBACK_RETRY_INTERVAL = float(os.getenv("FALLBACK_RETRY_INTERVAL", "60"))  # seconds

# Continuity repair configuration
AI_REPAIR_TIMEOUT = float(os.getenv("AI_REPAIR_TIMEOUT", "30"))  # seconds
AI_REPAIR_MAX_FAILURES = int(os.getenv("AI_REPAIR_MAX_FAILURES", "5"))
DISABLE_AI_REPAIR = _env_flag("DISABLE_AI_REPAIR")
REPAIR_CONTEXT_CHARS = int(os.getenv("REPAIR_CONTEXT_CHARS", "2500"))

# Chunking defaults
CHUNKS_PER_PAGE = int(os.getenv("CHUNKS_PER_PAGE", "3"))
CHUNK_OVERLAP = float(os.getenv("CHUNK_OVERLAP", "0.2"))

# Vector store configuration
VECTOR_DB_TYPE = os.getenv("VECTOR_DB_TYPE", "elasticsearch")
VECTOR_DB_CONFIG = {
    "host": os.getenv("VECTOR_DB_HOST", "http://localhost"),
    "port": int(os.getenv("VECTOR_DB_PORT", "9200")),
    "username": os.getenv("VECTOR_DB_USERNAME", ""),
    "password": os.getenv("VECTOR_DB_PASSWORD", ""),
    "index": os.getenv("VECTOR_DB_INDEX", "knowledge_base"),
}

# Transcript chunking
TRANSCRIPT_CHUNK_SIZE = int(os.getenv("TRANSCRIPT_CHUNK_SIZE", "4000"))
TRANSCRIPT_CHUNK_OVERLAP = int(os.getenv("TRANSCRIPT_CHUNK_OVERLAP", "500"))
