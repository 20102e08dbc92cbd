import os
from dataclasses import dataclass, field
from typing import Dict, Any

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    """
    Runtime settings read from the environment / .env
    """
    monitor_interval: float = 30.0          # seconds between ticks
    market_timezone: str = "America/Sao_Paulo"
    indicator_timeframe: str = "5m"
    log_level: str = "INFO"
    log_dir: str = "logs"
    redis_host: str = "localhost"
    redis_port: int = 6379
    db: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            monitor_interval=float(os.getenv("MONITOR_INTERVAL", "30")),
            market_timezone=os.getenv("MARKET_TIMEZONE", "America/Sao_Paulo"),
            indicator_timeframe=os.getenv("INDICATOR_TIMEFRAME", "5m"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_dir=os.getenv("LOG_DIR", "logs"),
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=int(os.getenv("REDIS_PORT", 6379)),
            db={
                "user": os.getenv("PGUSER", "postgres"),
                "password": os.getenv("PGPASSWORD", "postgres"),
                "database": os.getenv("PGDATABASE", "trading_db"),
                "host": os.getenv("PGHOST", "localhost"),
                "port": int(os.getenv("PGPORT", "5432")),
            },
        )
