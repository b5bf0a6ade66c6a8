#!/usr/bin/env python3
"""
Flask Application Runner
========================

Entry point for running the proficiency platform in development.

Usage:
    python run_server.py              # Run with default settings
    python run_server.py --debug      # Run in debug mode
    python run_server.py --port 8000  # Run on custom port

Environment Variables:
    PORT         - Server port (default: 5050)
    FLASK_DEBUG  - Enable debug mode (default: False)
    DATABASE_URL - Database connection string (default: local SQLite file)
"""

import os
import sys
import argparse
from pathlib import Path


def setup_environment():
    """Ensure the app directory is in the Python path"""
    app_dir = Path(__file__).parent
    if str(app_dir) not in sys.path:
        sys.path.insert(0, str(app_dir))


def main():
    """Main entry point for the Flask application"""
    parser = argparse.ArgumentParser(description='Run the English Proficiency Platform')
    parser.add_argument('--port', type=int, default=None, help='Port to run on')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')
    parser.add_argument('--host', default='127.0.0.1', help='Host to bind to')
    parser.add_argument('--wait-db', type=int, default=0, help='Seconds to wait for the database before starting')
    args = parser.parse_args()

    setup_environment()

    from app import app, db
    from database import wait_for_db

    if args.wait_db:
        with app.app_context():
            if not wait_for_db(db.engine, seconds=args.wait_db):
                print("Database not reachable, aborting.")
                sys.exit(1)

    port = args.port or int(os.environ.get('PORT', 5050))
    debug = args.debug or os.environ.get('FLASK_DEBUG', 'False').lower() in ('true', '1', 'yes', 'on')

    print("=" * 60)
    print("ENGLISH PROFICIENCY PLATFORM")
    print("=" * 60)
    print(f"Server: http://{args.host}:{port}")
    print(f"Debug Mode: {debug}")
    print(f"Routes: {len(list(app.url_map.iter_rules()))}")
    print("=" * 60)

    try:
        app.run(host=args.host, port=port, debug=debug, threaded=True, use_reloader=debug)
    except KeyboardInterrupt:
        print("\nServer stopped by user")


if __name__ == '__main__':
    main()
