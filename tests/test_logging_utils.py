from __future__ import annotations

import logging
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from hr_workflow import logging_utils


def _settings(log_file: str | None, level: str = "INFO") -> SimpleNamespace:
    return SimpleNamespace(
        logging=SimpleNamespace(level=level, file=log_file),
    )


@patch("hr_workflow.logging_utils.load_settings")
@patch("hr_workflow.logging_utils.logging.basicConfig")
def test_configure_logging_stream_only(
    mock_basic_config: MagicMock,
    mock_load_settings: MagicMock,
) -> None:
    mock_load_settings.return_value = _settings(None)

    logging_utils.configure_logging()

    kwargs = mock_basic_config.call_args.kwargs
    assert kwargs["force"] is True
    assert kwargs["level"] == logging.INFO
    assert len(kwargs["handlers"]) == 1


@patch("hr_workflow.logging_utils.load_settings")
@patch("hr_workflow.logging_utils.logging.basicConfig")
def test_configure_logging_level_override(
    mock_basic_config: MagicMock,
    mock_load_settings: MagicMock,
) -> None:
    mock_load_settings.return_value = _settings(None, level="WARNING")

    logging_utils.configure_logging("debug")

    assert mock_basic_config.call_args.kwargs["level"] == logging.DEBUG


@patch("hr_workflow.logging_utils.load_settings")
@patch("hr_workflow.logging_utils.logging.basicConfig")
def test_configure_logging_with_file(
    mock_basic_config: MagicMock,
    mock_load_settings: MagicMock,
    tmp_path,
) -> None:
    log_file = tmp_path / "logs" / "hr.log"
    mock_load_settings.return_value = _settings(str(log_file))

    logging_utils.configure_logging()

    handlers = mock_basic_config.call_args.kwargs["handlers"]
    assert len(handlers) == 2
    assert log_file.parent.is_dir()
    for handler in handlers:
        handler.close()


@patch("hr_workflow.logging_utils.load_settings")
@patch("hr_workflow.logging_utils.logging.basicConfig")
@patch("hr_workflow.logging_utils.logging.FileHandler", side_effect=OSError("permission denied"))
@patch("hr_workflow.logging_utils._logger")
def test_configure_logging_file_handler_error(
    mock_logger: MagicMock,
    _mock_file_handler: MagicMock,
    _mock_basic_config: MagicMock,
    mock_load_settings: MagicMock,
    tmp_path,
) -> None:
    mock_load_settings.return_value = _settings(str(tmp_path / "app.log"))

    logging_utils.configure_logging()

    mock_logger.warning.assert_called_once()

