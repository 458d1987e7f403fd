# lovablee/logging_config.py
import logging


class HealthCheckFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return "/health" not in record.getMessage()


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter())
    # httpx logs every request line at INFO, including device token URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)


def short_token(token: str, keep: int = 6) -> str:
    return f"{token[:keep]}..." if len(token) > keep else token
