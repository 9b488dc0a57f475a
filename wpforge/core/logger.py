import json
import logging
from shlex import quote as Q


def setup_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    if not logger.handlers:
        logger.addHandler(console_handler)

    return logger


def log_json(logger: logging.Logger, **kwargs):
    logger.info(json.dumps(kwargs, default=str, ensure_ascii=False))


def mask(text: str, secrets) -> str:
    """Replace every non-empty secret in ``text`` with ``***``.

    Commands carry secrets shell-quoted, so the quoted form is masked first.
    """
    for s in secrets or ():
        if s:
            text = text.replace(Q(s), "***").replace(s, "***")
    return text
