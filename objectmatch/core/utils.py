import hashlib
import structlog

logger = structlog.get_logger()

def calculate_bytes_hash(data: bytes, algorithm: str = "sha256") -> str:
    """Calculate hash of raw content for exact-duplicate bookkeeping."""
    try:
        hash_obj = hashlib.new(algorithm)
        hash_obj.update(data)
        return hash_obj.hexdigest()
    except Exception as e:
        logger.error("Failed to calculate content hash", algorithm=algorithm, error=str(e))
        raise

def format_short_hash(value: str, length: int = 16) -> str:
    """Shorten a fingerprint for log output."""
    if not value:
        return ""
    return f"{value[:length]}..." if len(value) > length else value
