# run.py
from pennyekart.config import Config
from pennyekart.main import app, start_flash_sale_watcher

if __name__ == "__main__":
    if Config.FLASH_SALE_WATCHER_ENABLED:
        start_flash_sale_watcher()
    app.run(
        debug=Config.DEBUG,
        host=Config.FLASK_RUN_HOST,
        port=Config.FLASK_RUN_PORT,
    )
