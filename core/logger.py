import logging

log = logging.getLogger("app")
