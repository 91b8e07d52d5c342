#!/usr/bin/env python3
"""
Main entry point for the org-stats server on App Engine.
"""

import logging
import os

from org_stats.server import run_server

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    # Run server on port 8000 for local development, 8080 for GAE
    port = int(os.environ.get('PORT', 8000))
    run_server(port=port)
