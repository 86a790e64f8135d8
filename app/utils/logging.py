import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # SQLAlchemy's engine logger is noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
