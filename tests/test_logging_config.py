import logging

from leadsheet import logging_config


def test_configure_logging_is_idempotent(monkeypatch):
    monkeypatch.setattr(logging_config, "_HANDLER", None)
    monkeypatch.setenv("LEADSHEET_LOG_LEVEL", "debug")
    logger = logging.getLogger("leadsheet")
    before = list(logger.handlers)
    level = logger.level

    try:
        logging_config.configure_logging()
        logging_config.configure_logging()
        added = [h for h in logger.handlers if h not in before]
        assert len(added) == 1
        assert logger.level == logging.DEBUG

        logging_config.configure_logging("not-a-level")
        assert logger.level == logging.INFO
    finally:
        for h in logger.handlers[:]:
            if h not in before:
                logger.removeHandler(h)
        logger.setLevel(level)
