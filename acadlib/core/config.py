# acadlib/core/config.py
import os
import sys
import logging
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

project_root = Path(__file__).resolve().parent.parent.parent
dotenv_path = project_root / ".env"

# --- Load .env if present ---
if dotenv_path.is_file():
    logger.info(f"Loading environment variables from: {dotenv_path}")
    load_dotenv(dotenv_path=dotenv_path, override=False)
else:
    logger.debug(f".env file not found at {dotenv_path}. Relying on system environment variables.")


class InterceptHandler(logging.Handler):
    """Routes standard library log records into Loguru."""
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging():
    """Configure Loguru sinks and intercept standard logging."""
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )
    log_file_path = Path(os.getenv("LOG_FILE_PATH", "logs/acadlib_{time:YYYY-MM-DD}.log"))
    log_rotation = os.getenv("LOG_ROTATION", "1 day")
    log_retention = os.getenv("LOG_RETENTION", "7 days")
    log_serialize = os.getenv("LOG_SERIALIZE", "False").lower() == "true"

    logger.remove()

    # Console
    logger.add(sys.stderr, level=log_level_name, format=log_format, colorize=True)

    # File
    try:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file_path,
            level=log_level_name,
            format=log_format,
            rotation=log_rotation,
            retention=log_retention,
            serialize=log_serialize,
            enqueue=True,
            backtrace=True,
            diagnose=False,
            encoding="utf-8",
        )
        logger.info(f"File logging enabled at: {log_file_path}")
    except OSError as e:
        logger.error(f"Failed to setup file logging at {log_file_path}: {e}")

    # --- Intercept standard logging ---
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in list(logging.root.manager.loggerDict):
        if name.startswith(("uvicorn", "fastapi", "starlette")):
            std_logger = logging.getLogger(name)
            std_logger.handlers = [InterceptHandler()]
            std_logger.propagate = False
    logging.getLogger("pymongo").setLevel(logging.WARNING)

    logger.info(f"Loguru logging setup complete. Level: {log_level_name}")


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}. Using default: {default}.")
        return default
    if value < minimum:
        logger.warning(f"{name}={value} is below {minimum}. Using default: {default}.")
        return default
    return value


def _bool_env(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


# --- JWT Configuration ---
SECRET_KEY: str = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    logger.critical("FATAL: SECRET_KEY environment variable is not set.")
    raise ValueError("SECRET_KEY environment variable is not set.")

ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES: int = _int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 30, minimum=1)

# --- Database Configuration ---
MONGODB_URL: str = os.getenv("MONGODB_URL")
if not MONGODB_URL:
    logger.critical("FATAL: MONGODB_URL environment variable is not set.")
    raise ValueError("MONGODB_URL environment variable is not set.")

_default_db_name = "academic_library"
path_part = MONGODB_URL.rsplit("/", 1)[-1].split("?")[0]
if path_part and "://" in MONGODB_URL and MONGODB_URL.count("/") >= 3:
    _default_db_name = path_part
DATABASE_NAME: str = os.getenv("DATABASE_NAME", _default_db_name)

# "auto" probes the server topology at startup; "true"/"false" force it.
MONGODB_TRANSACTIONS: str = os.getenv("MONGODB_TRANSACTIONS", "auto").strip().lower()
if MONGODB_TRANSACTIONS not in ("auto", "true", "false"):
    logger.warning(f"Invalid MONGODB_TRANSACTIONS={MONGODB_TRANSACTIONS!r}. Using 'auto'.")
    MONGODB_TRANSACTIONS = "auto"

# --- Circulation ---
LOAN_PERIOD_DAYS: int = _int_env("LOAN_PERIOD_DAYS", 14, minimum=1)

# --- Search / Pagination ---
DEFAULT_PAGE_SIZE: int = _int_env("DEFAULT_PAGE_SIZE", 10, minimum=1)
MAX_PAGE_SIZE: int = _int_env("MAX_PAGE_SIZE", 100, minimum=1)

# --- Uploads ---
UPLOAD_DIR: Path = Path(os.getenv("UPLOAD_DIR", str(project_root / "uploads")))
MAX_UPLOAD_SIZE_MB: int = _int_env("MAX_UPLOAD_SIZE_MB", 50, minimum=1)

# --- HTTP ---
RATE_LIMIT_ENABLED: bool = _bool_env("RATE_LIMIT_ENABLED", True)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


logger.info(f"JWT Algorithm: {ALGORITHM}")
logger.info(f"Access Token Expire Minutes: {ACCESS_TOKEN_EXPIRE_MINUTES}")
logger.info(f"Database Name: {DATABASE_NAME}")
logger.info(f"Loan period: {LOAN_PERIOD_DAYS} days, transactions: {MONGODB_TRANSACTIONS}")
