"""
Structured logging for load, cache and query operations.
"""

import logging
from typing import Any, Dict, List


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class StructuredLogger:
    """Structured logger for engine load, embedding cache and query operations."""

    def __init__(self, name: str = "kbmatch"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_cache_event(self, event: str, status: str = "success", details: Dict[str, Any] = None):
        """Log an embedding cache event (hit, miss, evict, save)."""
        level = logging.WARNING if status == "failed" else logging.INFO
        self.log_operation(f"cache.{event}", status, details, level=level)

    def log_embedding_batch(self, batch_index: int, total_batches: int, done: int, total: int, duration_ms: float):
        """Log completion of one bulk embedding batch."""
        details = {
            "batch": f"{batch_index}/{total_batches}",
            "entries": f"{done}/{total}",
            "duration_ms": round(duration_ms, 2)
        }
        self.log_operation("embeddings.batch", "success", details)

    def log_query(self, query: str, status: str, confidence: float = 0.0, details: Dict[str, Any] = None):
        """Log a single query outcome."""
        log_details = {
            "query": _truncate(query, 50),
            "confidence": round(confidence, 1)
        }
        if details:
            log_details.update(details)

        self.log_operation("engine.query", status, log_details)

    def log_config_issues(self, issues: List[str]):
        """Log configuration validation problems."""
        for issue in issues:
            self.log_operation("config.validate", "invalid", {"issue": issue}, level=logging.WARNING)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def exception(self, message: str) -> None:
        """Log an error message with the active exception's traceback."""
        self.logger.exception(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)

# Global logger instance
logger = StructuredLogger()
