import logging


class LoggerSetup:
    def __init__(self, log_level):
        self.log_level = log_level

    def setup_logging(self):
        level = getattr(logging, self.log_level.upper(), logging.INFO)
        logging.basicConfig(
            format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            level=level,
        )

        # the ledger client logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.ERROR)
        logging.getLogger("httpcore").setLevel(logging.ERROR)
