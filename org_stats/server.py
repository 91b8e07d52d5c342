#!/usr/bin/env python3
"""
GitHub Organization Statistics Web Server

A simple web server exposing the collected snapshots via a JSON API, plus the
admin endpoints for re-scoring, seeding, deleting, importing and exporting.
"""

import functools
import http.server
import json
import logging
import time
import urllib.parse
from http import HTTPStatus
from typing import Callable, Dict, Optional

from .config import AppConfig, load_configuration, split_organizations
from .db_factory import get_database_manager
from .errors import StorageUnavailable, ValidationError
from .models import parse_date
from .populator import DatabasePopulator
from .scoring import Scorer, update_scores

logger = logging.getLogger(__name__)

MAX_BODY_SIZE = 10 * 1024 * 1024


class StatsRequestHandler(http.server.BaseHTTPRequestHandler):
    """Serves statistics, projects and the admin endpoints as JSON."""

    def __init__(self, *args, config: AppConfig, **kwargs):
        self.config = config
        super().__init__(*args, **kwargs)

    def log_message(self, format, *args):
        logger.info(f"{self.address_string()} - {format % args}")

    def _send_json_response(self, data: dict, status: HTTPStatus = HTTPStatus.OK):
        """Send a JSON response with consistent headers."""
        body = json.dumps(data, indent=2).encode('utf-8')
        self.send_response(status)
        self.send_header("Content-type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_json_error(self, message: str, status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR):
        """Send a JSON error response."""
        self._send_json_response({"success": False, "message": message}, status)

    def _handle(self, action: Callable[[], Dict]):
        """Run an endpoint and map failures to HTTP status codes."""
        try:
            self._send_json_response(action())
        except ValidationError as e:
            self._send_json_error(str(e), HTTPStatus.BAD_REQUEST)
        except StorageUnavailable as e:
            logger.error(f"Storage unavailable for {self.path}: {e}")
            self._send_json_error(f"Database error: {e}", HTTPStatus.SERVICE_UNAVAILABLE)
        except Exception as e:
            logger.exception(f"Request {self.path} failed")
            self._send_json_error(f"Server error: {e}")

    def _read_body(self) -> bytes:
        try:
            content_length = int(self.headers.get('Content-Length') or 0)
        except ValueError as e:
            raise ValidationError("Invalid Content-Length header") from e
        if content_length < 0:
            raise ValidationError("Invalid Content-Length header")
        if content_length > MAX_BODY_SIZE:
            raise ValidationError("Request body too large")
        return self.rfile.read(content_length) if content_length else b""

    def _read_json_body(self):
        try:
            return json.loads(self._read_body().decode('utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError("Invalid JSON in request body") from e

    def _organizations(self, query_params: Dict, name: str = 'organizations') -> list:
        value = query_params.get(name, [None])[0]
        organizations = split_organizations(value) if value else list(self.config.organizations)
        if not organizations:
            raise ValidationError(f"Missing '{name}' parameter")
        return organizations

    def do_GET(self):
        """Handle GET requests."""
        parsed_path = urllib.parse.urlparse(self.path)
        path = parsed_path.path
        query_params = urllib.parse.parse_qs(parsed_path.query)

        if path == "/health":
            self._send_json_response({"success": True, "status": "ok"})
        elif path == "/api/statistics":
            self._handle(lambda: self.get_statistics(query_params))
        elif path == "/api/statistics/history":
            self._handle(lambda: self.get_statistics_history(query_params))
        elif path == "/api/projects":
            self._handle(lambda: self.get_projects(query_params))
        elif path == "/init":
            self._handle(self.init_test_data)
        elif path == "/delete":
            self._handle(self.delete_all)
        elif path == "/export":
            self._handle(self.export_database)
        else:
            self._send_json_error("Endpoint not found", HTTPStatus.NOT_FOUND)

    def do_POST(self):
        """Handle POST requests."""
        path = urllib.parse.urlparse(self.path).path

        if path == "/config/scoring.project":
            self._handle(self.config_scoring_project)
        elif path == "/import":
            self._handle(self.import_database)
        else:
            self._send_json_error("Endpoint not found", HTTPStatus.NOT_FOUND)

    def get_statistics(self, query_params: Dict) -> Dict:
        """Latest snapshot per organization, or all snapshots within a period."""
        organizations = self._organizations(query_params)
        start_date = parse_date(query_params.get('start_date', [None])[0])
        end_date = parse_date(query_params.get('end_date', [None])[0])
        if (start_date is None) != (end_date is None):
            raise ValidationError("Both 'start_date' and 'end_date' are required for a period")

        results = []
        with get_database_manager(self.config) as db_manager:
            db_manager.setup_database()
            for organization in organizations:
                if start_date is None:
                    statistics = db_manager.find_latest_statistics(organization, 1)
                else:
                    statistics = db_manager.find_statistics_in_period(organization, start_date, end_date)
                results.extend(s.to_dict() for s in statistics)

        return {"success": True, "statistics": results}

    def get_statistics_history(self, query_params: Dict) -> Dict:
        organization = query_params.get('organization', [None])[0]
        if not organization:
            raise ValidationError("Missing 'organization' parameter")

        with get_database_manager(self.config) as db_manager:
            db_manager.setup_database()
            statistics = db_manager.find_statistics_by_organization_name(organization)

        statistics.sort(key=lambda s: s.snapshot_date, reverse=True)
        return {
            "success": True,
            "organization": organization,
            "statistics": [s.to_dict() for s in statistics],
        }

    def get_projects(self, query_params: Dict) -> Dict:
        organizations = self._organizations(query_params)
        with get_database_manager(self.config) as db_manager:
            db_manager.setup_database()
            projects = [p for org in organizations for p in db_manager.find_projects(org)]
        return {"success": True, "projects": [p.to_dict() for p in projects]}

    def config_scoring_project(self) -> Dict:
        """Re-score the latest projects with the posted scoring project."""
        try:
            formula = self._read_body().decode('utf-8').strip()
        except UnicodeDecodeError as e:
            raise ValidationError("Scoring project must be UTF-8 text") from e
        organizations = self.headers.get('X-Organizations') or self.config.organization_list
        scorer = Scorer(formula or self.config.scoring_project)

        logger.info(f"Score update requested for '{organizations}' with '{scorer.scoring_project}'")
        with get_database_manager(self.config) as db_manager:
            db_manager.setup_database()
            messages = update_scores(db_manager, organizations, scorer)
        return {"success": True, "messages": messages}

    def init_test_data(self) -> Dict:
        with get_database_manager(self.config) as db_manager:
            db_manager.setup_database()
            populator = DatabasePopulator(
                db_manager, self.config.organizations, scorer=Scorer(self.config.scoring_project)
            )
            counts = populator.populate_test_data()
        return {"success": True, "message": "OK", "counts": counts}

    def delete_all(self) -> Dict:
        with get_database_manager(self.config) as db_manager:
            db_manager.setup_database()
            db_manager.delete_all()
        logger.info("All data deleted")
        return {"success": True, "message": "OK"}

    def export_database(self) -> Dict:
        with get_database_manager(self.config) as db_manager:
            db_manager.setup_database()
            export_data = db_manager.export_database()
        return {
            "success": True,
            "export": export_data,
            "timestamp": time.strftime('%Y-%m-%d %H:%M:%S')
        }

    def import_database(self) -> Dict:
        """Import a bundle, either bare or wrapped as {"import": ..., "replace_existing": ...}."""
        data = self._read_json_body()
        if not isinstance(data, dict):
            raise ValidationError("Import body must be a JSON object")
        import_data = data.get('import', data)
        replace_existing = bool(data.get('replace_existing', False))

        with get_database_manager(self.config) as db_manager:
            db_manager.setup_database()
            counts = db_manager.import_database(import_data, replace_existing)
        logger.info("Database imported successfully")
        return {"success": True, "message": "OK", "counts": counts}


def create_server(port: int = 8080, config: Optional[AppConfig] = None,
                  host: str = "") -> http.server.HTTPServer:
    """Create the HTTP server without starting it."""
    config = config or load_configuration()
    handler = functools.partial(StatsRequestHandler, config=config)
    return http.server.HTTPServer((host, port), handler)


def run_server(port: int = 8080, config: Optional[AppConfig] = None):
    """
    Run the statistics web server.

    Args:
        port: Port to listen on (default: 8080)
        config: Application configuration; read from the environment when omitted
    """
    with create_server(port, config) as httpd:
        logger.info(f"Starting server on port {port}")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Server stopped by user")


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    run_server()
