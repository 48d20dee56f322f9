"""
Centralized logging configuration for GroupSplit.
Provides component-specific loggers with separate log files.
"""

import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any

from ..config import get_config


DETAILED_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - "
    "%(funcName)s() - %(message)s"
)
SIMPLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


class ComponentLogger:
    """Manages component-specific logging with separate files."""

    _loggers: Dict[str, logging.Logger] = {}
    _initialized = False
    _log_dir: Optional[Path] = None
    _debug = False
    _to_file = True

    COMPONENTS = {
        "api": {"level": logging.INFO, "file": "api.log"},
        "auth": {"level": logging.INFO, "file": "auth.log"},
        "database": {"level": logging.INFO, "file": "database.log"},
        "email": {"level": logging.INFO, "file": "email.log"},
        "services": {"level": logging.INFO, "file": "services.log"},
        "main": {"level": logging.INFO, "file": "main.log"},
        "error": {"level": logging.ERROR, "file": "errors.log"},
    }

    @classmethod
    def initialize(
        cls,
        log_dir: Optional[str] = None,
        debug: Optional[bool] = None,
        to_file: Optional[bool] = None,
    ) -> None:
        """
        Initialize the logging system with component-specific loggers.

        Args:
            log_dir: Directory for log files. Defaults to config.app.log_dir
            debug: Enable debug logging for all components
            to_file: Write rotating log files; console only when False
        """
        if cls._initialized:
            return

        config = get_config()
        cls._debug = config.server.debug if debug is None else debug
        cls._to_file = config.app.log_to_file if to_file is None else to_file

        session_dir = datetime.now().strftime("%Y%m%d_%H%M%S")
        if cls._to_file:
            base_dir = Path(log_dir or config.app.log_dir)
            cls._log_dir = base_dir / session_dir
            cls._log_dir.mkdir(parents=True, exist_ok=True)

            with open(cls._log_dir / "session_info.txt", "w", encoding="utf-8") as f:
                f.write(f"Session started: {datetime.now().isoformat()}\n")
                f.write(f"Debug mode: {cls._debug}\n")
                f.write("Config:\n")
                f.write(f"  Database: {config.database.url}\n")
                f.write(f"  Frontend URL: {config.app.frontend_url}\n")
                f.write(f"  SMTP host: {config.smtp.host or '(outbox only)'}\n")
                f.write(f"  Log directory: {cls._log_dir}\n")

        root_level = logging.DEBUG if cls._debug else logging.INFO
        logging.getLogger().setLevel(root_level)

        unified_handler = None
        if cls._to_file:
            unified_handler = logging.handlers.RotatingFileHandler(
                cls._log_dir / "unified.log",
                maxBytes=20 * 1024 * 1024,  # 20MB
                backupCount=3,
                encoding="utf-8",
            )
            unified_handler.setLevel(root_level)
            unified_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

        for component_name, component_config in cls.COMPONENTS.items():
            level = logging.DEBUG if cls._debug else component_config["level"]
            cls._loggers[component_name] = cls._build_logger(
                component_name,
                level,
                component_config["file"],
                unified_handler,
                console=component_name in ("error", "main"),
            )

        cls._initialized = True

        main_logger = cls._loggers["main"]
        main_logger.info("=" * 80)
        main_logger.info("GroupSplit Logging System Initialized")
        main_logger.info(f"Session: {session_dir}")
        main_logger.info(f"Log directory: {cls._log_dir or '(console only)'}")
        main_logger.info(f"Debug mode: {cls._debug}")
        main_logger.info("=" * 80)

    @classmethod
    def _build_logger(
        cls,
        component: str,
        level: int,
        file_name: str,
        unified_handler: Optional[logging.Handler],
        console: bool = False,
    ) -> logging.Logger:
        logger = logging.getLogger(f"groupsplit.{component}")
        logger.handlers.clear()
        logger.propagate = False
        logger.setLevel(level)

        if cls._to_file and cls._log_dir is not None:
            file_handler = logging.handlers.RotatingFileHandler(
                cls._log_dir / file_name,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            logger.addHandler(file_handler)
            if unified_handler is not None:
                logger.addHandler(unified_handler)

        # Errors always reach the console; everything does in debug or console-only mode
        if console or cls._debug or not cls._to_file:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(
                logging.DEBUG if cls._debug else (logging.ERROR if cls._to_file else logging.WARNING)
            )
            console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT, datefmt="%H:%M:%S"))
            logger.addHandler(console_handler)

        return logger

    @classmethod
    def get_logger(cls, component: str) -> logging.Logger:
        """
        Get a logger for a specific component.

        Args:
            component: Component name (api, auth, database, email, services, main)
                      or a module path like 'groupsplit.api.expenses'

        Returns:
            Logger instance for the component
        """
        if not cls._initialized:
            cls.initialize()

        if component.startswith("groupsplit."):
            parts = component.split(".")
            if parts[1] in ("api", "auth"):
                component = parts[1]
            elif parts[1] in ("db", "repositories"):
                component = "database"
            elif parts[1] == "services":
                component = "email" if parts[-1] == "email" else "services"
            else:
                component = "main"

        if component not in cls._loggers:
            cls._create_component_logger(component)
        return cls._loggers[component]

    @classmethod
    def _create_component_logger(cls, component: str) -> None:
        """Create a component logger on-demand."""
        unified_handler = None
        unified = logging.getLogger("groupsplit.main")
        for handler in unified.handlers:
            if getattr(handler, "baseFilename", "").endswith("unified.log"):
                unified_handler = handler
                break

        level = logging.DEBUG if cls._debug else logging.INFO
        cls._loggers[component] = cls._build_logger(
            component, level, f"{component}.log", unified_handler
        )

    @classmethod
    def log_exception(
        cls, component: str, exc: Exception, context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an exception with context to both component and error logs.

        Args:
            component: Component where the exception occurred
            exc: The exception to log
            context: Additional context information
        """
        component_logger = cls.get_logger(component)
        error_logger = cls.get_logger("error")

        context_str = ""
        if context:
            context_str = " | Context: " + ", ".join(f"{k}={v}" for k, v in context.items())

        component_logger.error(
            f"Exception in {component}: {type(exc).__name__}: {exc}{context_str}",
            exc_info=exc,
        )
        error_logger.error(
            f"[{component}] {type(exc).__name__}: {exc}{context_str}", exc_info=exc
        )


def get_logger(component: str) -> logging.Logger:
    """Get a logger for a specific component."""
    return ComponentLogger.get_logger(component)


def initialize_logging(
    log_dir: Optional[str] = None, debug: Optional[bool] = None, to_file: Optional[bool] = None
) -> None:
    """Initialize the logging system."""
    ComponentLogger.initialize(log_dir=log_dir, debug=debug, to_file=to_file)


def log_exception(component: str, exc: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an exception with context."""
    ComponentLogger.log_exception(component, exc, context)
