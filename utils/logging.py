import logging
import logging.handlers
import os
import json
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any
from fastapi import Request

from utils.config import AppConfig


class SchedulerLogger:
    """App logger with request timing and AI request/fallback tracking"""

    def __init__(self,
                 log_file: str = AppConfig.LOG_FILE,
                 max_file_size: int = AppConfig.LOG_MAX_BYTES,
                 backup_count: int = AppConfig.LOG_BACKUP_COUNT,
                 log_level: str = AppConfig.LOG_LEVEL):

        self.log_file = log_file
        self.max_file_size = max_file_size
        self.backup_count = backup_count

        # Create logs directory if it doesn't exist
        log_dir = Path(log_file).parent
        log_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger("exam_scheduler")
        self.logger.setLevel(getattr(logging, log_level.upper()))

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        console_handler = logging.StreamHandler()

        formatter = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)-20s | %(funcName)-15s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        file_handler.setFormatter(formatter)
        console_handler.setFormatter(formatter)

        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)

        self.stats = {
            "ai_requests": 0,
            "ai_failures": 0,
            "fallbacks": 0,
            "total_requests": 0,
            "start_time": time.time()
        }

        self.logger.info("🚀 Scheduler logging initialized")
        self.logger.info(f"📁 Log file: {log_file}")
        self.logger.info(f"💾 Max file size: {max_file_size // (1024*1024)}MB")

    def log_request_start(self, request: Request, endpoint: str, user_id: Optional[str] = None):
        """Log the start of a request with details"""
        client_ip = request.client.host if request.client else "unknown"
        user_agent = request.headers.get("user-agent", "unknown")

        request_info = {
            "endpoint": endpoint,
            "method": request.method,
            "client_ip": client_ip,
            "user_id": user_id or "anonymous",
            "user_agent": user_agent[:100],
            "timestamp": datetime.now().isoformat()
        }

        self.logger.info(f"🔵 REQUEST START | {endpoint} | User: {user_id or 'anonymous'} | IP: {client_ip}")
        return request_info

    def log_request_end(self, request_info: Dict[str, Any], duration_ms: float, status_code: int = 200):
        """Log the end of a request with performance metrics"""
        endpoint = request_info["endpoint"]
        user_id = request_info["user_id"]

        self.stats["total_requests"] += 1

        status_emoji = "✅" if status_code < 400 else "❌"

        self.logger.info(
            f"{status_emoji} REQUEST END | {endpoint} | User: {user_id} | "
            f"Duration: {duration_ms:.2f}ms | Status: {status_code}"
        )

    def log_ai_request(self, agent_type: str, prompt_digest: str, duration_ms: float, succeeded: bool = True):
        """Log one call to the text-generation model"""
        self.stats["ai_requests"] += 1
        timestamp = datetime.now().isoformat()

        if succeeded:
            self.logger.info(
                f"🤖 AI REQUEST | {agent_type} | Prompt: {prompt_digest} | "
                f"Duration: {duration_ms:.2f}ms | At: {timestamp}"
            )
        else:
            self.stats["ai_failures"] += 1
            self.logger.error(
                f"🤖 AI REQUEST FAILED | {agent_type} | Prompt: {prompt_digest} | "
                f"Duration: {duration_ms:.2f}ms | At: {timestamp}"
            )

    def log_ai_fallback(self, agent_type: str, reason: str):
        """Log that generated content was replaced by its fallback value"""
        self.stats["fallbacks"] += 1
        self.logger.warning(f"🟠 FALLBACK | {agent_type} | Reason: {reason}")

    def log_database_query(self, query_type: str, table: str, duration_ms: float, user_id: Optional[str] = None):
        """Log database operations"""
        self.logger.debug(
            f"🗄️ DATABASE | {query_type} | Table: {table} | Duration: {duration_ms:.2f}ms | "
            f"User: {user_id or 'system'}"
        )

    def log_error(self, error: Exception, endpoint: str, user_id: Optional[str] = None, extra_context: Dict = None):
        """Log errors with context"""
        context = f" | Context: {json.dumps(extra_context, default=str)}" if extra_context else ""

        self.logger.error(
            f"💥 ERROR | {endpoint} | {type(error).__name__}: {str(error)} | "
            f"User: {user_id or 'anonymous'}{context}",
            exc_info=True
        )

    def get_ai_stats(self) -> Dict[str, Any]:
        """Get current AI and request statistics"""
        uptime_hours = (time.time() - self.stats["start_time"]) / 3600
        ai_requests = max(self.stats["ai_requests"], 1)

        return {
            "ai_requests": self.stats["ai_requests"],
            "ai_failures": self.stats["ai_failures"],
            "fallbacks": self.stats["fallbacks"],
            "ai_failure_rate_percent": round((self.stats["ai_failures"] / ai_requests) * 100, 2),
            "total_requests": self.stats["total_requests"],
            "requests_per_hour": round(self.stats["total_requests"] / max(uptime_hours, 0.01), 2),
            "uptime_hours": round(uptime_hours, 2),
            "log_file": self.log_file,
            "log_file_size_mb": round(os.path.getsize(self.log_file) / (1024*1024), 2) if os.path.exists(self.log_file) else 0
        }

    def log_periodic_stats(self):
        """Log periodic AI and request statistics"""
        stats = self.get_ai_stats()

        self.logger.info(
            f"📊 PERIODIC STATS | Requests: {stats['total_requests']} | "
            f"AI Requests: {stats['ai_requests']} | "
            f"AI Failure Rate: {stats['ai_failure_rate_percent']}% | "
            f"Fallbacks: {stats['fallbacks']} | "
            f"Uptime: {stats['uptime_hours']}h"
        )


# Global logger instance
app_logger = SchedulerLogger()


def log_request_start(request: Request, endpoint: str, user_id: Optional[str] = None):
    return app_logger.log_request_start(request, endpoint, user_id)

def log_request_end(request_info: Dict[str, Any], duration_ms: float, status_code: int = 200):
    app_logger.log_request_end(request_info, duration_ms, status_code)

def log_ai_request(agent_type: str, prompt_digest: str, duration_ms: float, succeeded: bool = True):
    app_logger.log_ai_request(agent_type, prompt_digest, duration_ms, succeeded)

def log_ai_fallback(agent_type: str, reason: str):
    app_logger.log_ai_fallback(agent_type, reason)

def log_database_query(query_type: str, table: str, duration_ms: float, user_id: Optional[str] = None):
    app_logger.log_database_query(query_type, table, duration_ms, user_id)

def log_error(error: Exception, endpoint: str, user_id: Optional[str] = None, extra_context: Dict = None):
    app_logger.log_error(error, endpoint, user_id, extra_context)

def get_ai_stats():
    return app_logger.get_ai_stats()

def log_periodic_stats():
    app_logger.log_periodic_stats()
