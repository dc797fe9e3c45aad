import json
import logging
from pathlib import Path

LOG_DIR = Path(__file__).parent.parent / "logs"
LOG_FILE = LOG_DIR / "app.log"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_MODES = ("off", "info", "debug")

# log_mode read from the stored config, None until first use
_log_mode_cache = None


def _get_log_mode():
    """Get log mode from the stored configuration (without creating the database)."""
    global _log_mode_cache
    if _log_mode_cache is not None:
        return _log_mode_cache

    try:
        from modloc.core import database as db
        if not db.DB_FILE.exists():
            return 'off'
        raw = db.get_app_config('config')
        log_mode = json.loads(raw).get('log_mode', 'off') if raw else 'off'
        if log_mode not in LOG_MODES:
            log_mode = 'off'
        _log_mode_cache = log_mode
        return log_mode
    except Exception:
        # unreadable config means logging stays off
        return 'off'


def _level_for(log_mode: str) -> int:
    if log_mode == 'debug':
        return logging.DEBUG
    if log_mode == 'off':
        # Higher than CRITICAL disables everything
        return logging.CRITICAL + 1
    return logging.INFO


def _make_file_handler() -> logging.FileHandler:
    LOG_DIR.mkdir(exist_ok=True)
    f_handler = logging.FileHandler(LOG_FILE, encoding='utf-8')
    f_handler.setLevel(logging.DEBUG)
    f_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return f_handler


def _apply_log_mode(logger: logging.Logger, log_mode: str) -> None:
    """Bring a logger's level and handlers in line with ``log_mode``."""
    level = _level_for(log_mode)
    logger.setLevel(level)

    file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    console_handlers = [
        h for h in logger.handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]

    if log_mode == 'off':
        for handler in file_handlers:
            handler.close()
            logger.removeHandler(handler)
    elif not file_handlers:
        logger.addHandler(_make_file_handler())

    if not console_handlers and log_mode != 'off':
        c_handler = logging.StreamHandler()
        c_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(c_handler)
        console_handlers = [c_handler]

    for handler in console_handlers:
        handler.setLevel(level)


def _clear_log_mode_cache():
    """Re-read log_mode and re-apply it to every modloc logger after a settings change."""
    global _log_mode_cache
    _log_mode_cache = None

    log_mode = _get_log_mode()
    # Only loggers that have handlers were created by get_logger
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        if logger.handlers or logger_name.startswith('modloc'):
            _apply_log_mode(logger, log_mode)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    _apply_log_mode(logger, _get_log_mode())
    return logger
