"""
Structured logger for indexing, projection, retrieval and provider operations.
"""

import logging
from typing import Any, Dict


def _truncate(value: str, limit: int = 50) -> str:
    return value[:limit] + "..." if len(value) > limit else value


class StructuredLogger:
    """Structured logger shared by every semantic index component."""

    def __init__(self, name: str = "semantic_index"):
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

    def log_index_operation(self, operation: str, business_id: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log an indexer operation (upsert, skip, remove)."""
        log_details = {"business_id": business_id}
        if details:
            log_details.update(details)

        level = logging.WARNING if status == "failed" else logging.INFO
        self.log_operation(f"index.{operation}", status, log_details, level=level)

    def log_projection_transition(self, previous: str, current: str, reason: str = ""):
        """Log a change of the accelerated backend availability state."""
        log_details = {"from": previous, "to": current}
        if reason:
            log_details["reason"] = _truncate(reason, 200)

        level = logging.WARNING if current == "unavailable" else logging.INFO
        self.log_operation("projection.state", current, log_details, level=level)

    def log_dependency_call(self, component: str, operation: str, duration_ms: float, success: bool):
        """Log a remote dependency call observation."""
        log_details = {
            "component": component,
            "operation": operation,
            "duration_ms": round(duration_ms, 2),
        }
        self.log_operation(f"dependency.{component}.{operation}", "success" if success else "failed", log_details)

    def log_search(self, source: str, result_count: int, limit: int, details: Dict[str, Any] = None):
        """Log a retrieval query."""
        log_details = {"source": source, "results": result_count, "limit": limit}
        if details:
            log_details.update({k: _truncate(v) if isinstance(v, str) else v for k, v in details.items()})

        self.log_operation("search", "success", log_details)

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

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
