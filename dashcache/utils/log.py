import json
import logging
import datetime
import re

_CREDENTIALS_IN_URL = re.compile(r'(https?://)[^/@\s]+@')


class StructuredLogger:

    def __init__(self, logger_name='StructuredLogger', level='DEBUG'):
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(getattr(logging, str(level).upper(), logging.DEBUG))

        # getLogger returns the same instance per name; attach the handler only once
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter('%(message)s')
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def _log(self, level, message, **kwargs):
        if not self.logger.isEnabledFor(getattr(logging, level.upper())):
            return
        log_entry = {
            'timestamp': datetime.datetime.now().isoformat(),
            'level': level.upper(),
            'message': message,
            **{k: self._redact(v) for k, v in kwargs.items()}
        }
        json_log = json.dumps(log_entry, default=str)
        getattr(self.logger, level)(json_log)  # Invoke the method corresponding to the level

    @staticmethod
    def _redact(value):
        if isinstance(value, str):
            return _CREDENTIALS_IN_URL.sub(r'\1<redacted>@', value)
        return value

    def setLevel(self, level):
        self.logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    def info(self, message, **kwargs):
        self._log('info', message, **kwargs)

    def warning(self, message, **kwargs):
        self._log('warning', message, **kwargs)

    def error(self, message, **kwargs):
        self._log('error', message, **kwargs)

    def debug(self, message, **kwargs):
        self._log('debug', message, **kwargs)


app_logger = StructuredLogger('DashcacheLogger')
