import logging
import os
import sys

from PySide6.QtWidgets import QApplication

from core.services.session import ErpSession
from core.settings import load_settings
from ui.main_window import MainWindow


def main() -> int:
    logging.basicConfig(
        level=os.environ.get("ERP_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = QApplication(sys.argv)
    session = ErpSession.from_settings(load_settings())
    win = MainWindow(session)
    win.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
