import logging

import pytest

from rinksim.logging_config import ColoredFormatter, configure_module_logger, log_exception, setup_logging

pytestmark = pytest.mark.usefixtures("restore_root_logger")


def test_file_logging_splits_by_level(tmp_path):
    setup_logging(level="DEBUG", log_dir=str(tmp_path), enable_console=False, enable_file=True)
    logger = logging.getLogger("rinksim.test")
    logger.debug("period transition")
    logger.error("invariant broken")
    for handler in logging.getLogger().handlers:
        handler.flush()

    debug_log = (tmp_path / "rinksim_debug.log").read_text()
    error_log = (tmp_path / "rinksim_error.log").read_text()
    assert "period transition" in debug_log
    assert "invariant broken" in error_log
    assert "period transition" not in error_log


def test_unknown_level_rejected():
    with pytest.raises(ValueError):
        setup_logging(level="LOUD", enable_console=False)


def test_colored_formatter_leaves_record_untouched():
    record = logging.LogRecord("rinksim", logging.WARNING, __file__, 1, "careful", None, None)
    text = ColoredFormatter("%(levelname)s %(message)s").format(record)
    assert "\033[33m" in text
    assert record.levelname == "WARNING"


def test_log_exception_context(caplog):
    logger = logging.getLogger("rinksim.test")
    try:
        raise RuntimeError("boom")
    except RuntimeError as e:
        with caplog.at_level(logging.ERROR, logger="rinksim.test"):
            log_exception(logger, e, {'seed': 7})
    assert "seed=7" in caplog.text
    assert "RuntimeError: boom" in caplog.text


def test_configure_module_logger():
    logger = configure_module_logger("rinksim.simulation_engine", "DEBUG")
    try:
        assert logger.level == logging.DEBUG
        assert logger.propagate
    finally:
        logger.setLevel(logging.NOTSET)
