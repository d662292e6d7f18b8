#!/usr/bin/env python3
"""
Run the capkit development server.
"""

import logging

from capkit.web import create_app

if __name__ == '__main__':
    logging.basicConfig(level=logging.DEBUG, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app = create_app()
    app.run(debug=True, host='127.0.0.1', port=5000)
