import logging

from mpgfit.logging_config import setup_logging


def test_setup_logging_replaces_handlers(tmp_path):
    log_file = tmp_path / "mpgfit.log"

    setup_logging("debug")
    logger = setup_logging("info", log_file=str(log_file))

    assert logger.name == "mpgfit"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 2

    logging.getLogger("mpgfit.train").info("Done Training")
    for handler in logger.handlers:
        handler.flush()
    assert "mpgfit.train - INFO - Done Training" in log_file.read_text()

    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
