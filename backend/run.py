#!/usr/bin/env python3
"""
Run the content risk analysis backend server.
"""

import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

from app import create_app

app = create_app()

if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_DEBUG', 'false').lower() == 'true'

    print(f"""
╔══════════════════════════════════════════════════════════════╗
║           Content Risk Analysis - Backend                    ║
╠══════════════════════════════════════════════════════════════╣
║  API Server:  http://localhost:{port}                          ║
║  Health:      http://localhost:{port}/health                   ║
║  Queue API:   http://localhost:{port}/api/queue/status         ║
╚══════════════════════════════════════════════════════════════╝
    """)

    # No reloader: it would start a second queue worker
    app.run(host='0.0.0.0', port=port, debug=debug, use_reloader=False)
