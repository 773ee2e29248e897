#!/usr/bin/env python
"""
Run the chanopen API server
"""
import uvicorn
from chanopen.cli.logger import LoggerSetup
from chanopen.settings import ApiSettings, ChanopenSettings


def main():
    log_level = ChanopenSettings().log_level
    LoggerSetup(log_level).setup_logging()

    settings = ApiSettings()
    uvicorn.run(
        "chanopen.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=log_level.value.lower()
    )


if __name__ == "__main__":
    main()
