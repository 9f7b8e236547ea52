import logging
import os
from typing import Optional

LOGGER_NAME = 'boptest_api'


def setup_logger(run_folder: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Set up the package logger to write to the console and, optionally, a file.

    Args:
        run_folder (str): Path to the folder where ``simulation.log`` will be
            created. No file handler is attached when omitted.
        level (int): Level of the console handler.

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    file_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    console_formatter = logging.Formatter('%(message)s')

    # Calling twice must not duplicate output
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if run_folder is not None:
        log_file = os.path.join(run_folder, 'simulation.log')
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    return logger
