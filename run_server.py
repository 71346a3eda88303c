# run_server.py
import logging
import os
import sys
import threading
import time
import webbrowser

logger = logging.getLogger("easy-receipt")


def _prepare_workdir_for_pyinstaller():
    """
    Wenn als PyInstaller-EXE gestartet, liegen die Daten unter _MEIPASS.
    Dorthin wechseln, damit relative Pfade (./db, ./data) gleich bleiben.
    """
    base = getattr(sys, "_MEIPASS", None)
    if base and os.path.isdir(base):
        os.chdir(base)


def _open_docs_later(url: str, delay: float = 0.8):
    def _go():
        time.sleep(delay)
        try:
            webbrowser.open(url)
        except webbrowser.Error as exc:
            logger.warning("Browser konnte nicht geoeffnet werden: %s", exc)
    threading.Thread(target=_go, daemon=True).start()


def main():
    _prepare_workdir_for_pyinstaller()

    import uvicorn
    host = os.getenv("EASY_RECEIPT_HOST", "127.0.0.1")
    port = int(os.getenv("EASY_RECEIPT_PORT", "8000"))

    # API-Doku oeffnen, sobald der Server bereit ist
    if os.getenv("EASY_RECEIPT_OPEN_BROWSER", "1") == "1":
        _open_docs_later(f"http://{host}:{port}/docs")

    uvicorn.run("main:app", host=host, port=port, reload=False, log_level="info")


if __name__ == "__main__":
    main()
