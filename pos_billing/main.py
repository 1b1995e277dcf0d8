import signal
import sys

from PySide6.QtCore import QCoreApplication

from . import config
from .constants import APP_NAME
from .database import get_connection
from .modules.sales import BillingController, HttpTaxService
from .utils.loggers import get_logger

log = get_logger()


def build_controller(app: QCoreApplication) -> BillingController:
    conn = get_connection(config.DB_PATH)
    service = None
    if config.TAX_SERVICE_URL:
        service = HttpTaxService(config.TAX_SERVICE_URL, timeout_ms=config.TIMEOUT_MS, parent=app)
        log.info("Tax service: %s", service.url)
    else:
        log.warning("POS_TAX_SERVICE_URL is not set; totals will stay untaxed estimates.")
    return BillingController(conn, service, parent=app)


def main() -> int:
    app = QCoreApplication(sys.argv)
    app.setApplicationName(APP_NAME)
    # let Ctrl+C stop the event loop
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    controller = build_controller(app)
    log.info("%s ready: %d bill slot(s), database %s", APP_NAME, controller.store.slot_count, config.DB_PATH)
    if "--check" in sys.argv[1:]:
        return 0
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
