import contextvars
import datetime
import logging
import os
import re

_current_user = contextvars.ContextVar("reportengine_user", default=None)


class ReportEngineLogger:
    """
    Custom logger for the report engine
    Logs format: datetime : user_name : error/warning/info : log details
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(ReportEngineLogger, cls).__new__(cls)
            cls._instance._setup_logger()
        return cls._instance

    def _setup_logger(self):
        """Set up the logger with the required format"""
        self.logger = logging.getLogger('reportengine')

        # Read log level from environment variable, default to INFO
        log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()

        log_level_map = {
            'DEBUG': logging.DEBUG,
            'INFO': logging.INFO,
            'WARNING': logging.WARNING,
            'ERROR': logging.ERROR,
            'CRITICAL': logging.CRITICAL
        }
        log_level = log_level_map.get(log_level_str, logging.INFO)
        self.logger.setLevel(log_level)

        # Prevent duplicate log entries
        if self.logger.hasHandlers():
            self.logger.handlers.clear()

        log_file = os.getenv('REPORT_LOG_FILE')
        if log_file:
            handler = logging.FileHandler(log_file)
        else:
            handler = logging.StreamHandler()
        handler.setLevel(log_level)

        # The custom format is applied in _format_message
        handler.setFormatter(logging.Formatter('%(message)s'))
        self.logger.addHandler(handler)

        self.filter_patterns = [
            r'Request: \w+ /.*',  # Filter out API request logs
            r'Response: \d+',     # Filter out API response logs
        ]

    def _should_log(self, message):
        """Check if the message should be logged based on filter patterns"""
        for pattern in self.filter_patterns:
            if re.search(pattern, message):
                return False
        return True

    def _get_username(self):
        """Get the user bound to the current request context or default to 'system'"""
        return _current_user.get() or 'system'

    def _format_message(self, level, message):
        timestamp = datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        username = self._get_username()
        return f"{timestamp} : {username} : {level} : {message}"

    def _render(self, message, args):
        if args:
            message = message % args if '%' in message else message.format(*args)
        return message

    def debug(self, message, *args):
        """Log a debug message. Supports format strings: debug("format %s", arg)"""
        message = self._render(message, args)
        if self._should_log(message):
            self.logger.debug(self._format_message('debug', message))

    def info(self, message, *args):
        """Log an info message. Supports format strings: info("format %s", arg)"""
        message = self._render(message, args)
        if self._should_log(message):
            self.logger.info(self._format_message('info', message))

    def warning(self, message, *args):
        """Log a warning message. Supports format strings: warning("format %s", arg)"""
        message = self._render(message, args)
        if self._should_log(message):
            self.logger.warning(self._format_message('warning', message))

    def error(self, message, *args, **kwargs):
        """
        Log an error message. Supports format strings: error("format %s", arg)
        exc_info parameter is ignored - no tracebacks are included by default
        """
        message = self._render(message, args)
        if self._should_log(message):
            self.logger.error(self._format_message('error', message), exc_info=False)


# Create a singleton instance
logger = ReportEngineLogger()


def set_log_user(username):
    """Bind a username to log lines emitted in the current context. Returns a reset token."""
    return _current_user.set(username)


def reset_log_user(token):
    _current_user.reset(token)


def debug(message, *args):
    logger.debug(message, *args)


def info(message, *args):
    logger.info(message, *args)


def warning(message, *args):
    logger.warning(message, *args)


def error(message, *args, exc_info=False):
    """Log an error message. Supports format strings: error("format %s", arg)"""
    # exc_info parameter is ignored - no tracebacks are included by default
    logger.error(message, *args)
