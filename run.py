#!/usr/bin/env python3
"""
Book & Move job distribution API - development entry point
"""
import logging
import os

from server import create_app

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=app.config["PORT"],
        debug=app.config["DEBUG"],
        use_reloader=False,
    )
