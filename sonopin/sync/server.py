"""
Sync server.
Flask application exposing the pin object store over HTTP.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

from flask import Flask, Response, jsonify, request, send_file, stream_with_context
from flask_cors import CORS

from sonopin.shared.config import server_defaults
from sonopin.shared.constants import API_PREFIX, DEFAULT_DOWNLOAD_CHUNK_SIZE
from sonopin.shared.errors import SonopinError
from sonopin.store.archive import ArchiveReader
from .storage import ObjectStore

logger = logging.getLogger(__name__)

TEXT_PLAIN = {"Content-Type": "text/plain; charset=utf-8"}


def create_app(data_dir: Optional[Union[str, Path]] = None) -> Flask:
    """
    Build the sync server application.

    Args:
        data_dir: Root of the object store; defaults to SONOPIN_DATA_DIR or
            ./sonopin-data
    """
    if data_dir is None:
        data_dir = server_defaults()["data_dir"]

    app = Flask(__name__)
    CORS(app)
    store = ObjectStore(data_dir)
    app.config["OBJECT_STORE"] = store
    logger.info("Serving object store at %s", store.data_dir)

    @app.errorhandler(SonopinError)
    def handle_error(e: SonopinError):
        if e.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, e.message)
        return e.message, e.http_status, TEXT_PLAIN

    @app.route('/api/health')
    def health():
        return jsonify({"status": "healthy"})

    # --- Projects ---

    @app.route(f'{API_PREFIX}/projects', methods=['GET'])
    def list_projects():
        return jsonify(store.list_projects())

    @app.route(f'{API_PREFIX}/projects', methods=['POST'])
    def create_project():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return "Invalid JSON", 400, TEXT_PLAIN
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            return "Missing project name", 400, TEXT_PLAIN
        store.create_project(name.strip())
        return "Project created", 201, TEXT_PLAIN

    @app.route(f'{API_PREFIX}/projects/<project>', methods=['GET'])
    def get_project(project):
        return jsonify(store.project_info(project))

    @app.route(f'{API_PREFIX}/projects/<project>', methods=['DELETE'])
    def delete_project(project):
        store.delete_project(project)
        return "Project deleted", 200, TEXT_PLAIN

    # --- Pins ---

    @app.route(f'{API_PREFIX}/projects/<project>/pins', methods=['GET'])
    def list_pins(project):
        return jsonify(store.list_pins(project))

    @app.route(f'{API_PREFIX}/projects/<project>/pins', methods=['POST'])
    def upload_pin(project):
        try:
            meta = json.loads(request.form.get("meta", ""))
        except ValueError:
            return "Invalid metadata JSON", 400, TEXT_PLAIN
        if not isinstance(meta, dict):
            return "Invalid metadata JSON", 400, TEXT_PLAIN

        version = str(meta.get("version") or "").strip()
        if not version:
            return "Missing version", 400, TEXT_PLAIN

        upload = request.files.get("file")
        if upload is None:
            return "Missing file", 400, TEXT_PLAIN

        store.save_pin(project, version, upload.stream)
        return "Pin uploaded", 201, TEXT_PLAIN

    @app.route(f'{API_PREFIX}/projects/<project>/pins/<version>', methods=['GET'])
    def fetch_pin(project, version):
        path = store.archive_path(project, version)
        return send_file(
            path,
            mimetype='application/gzip',
            as_attachment=True,
            download_name=f"{version}.tar.gz",
        )

    @app.route(f'{API_PREFIX}/projects/<project>/pins/<version>/file', methods=['GET'])
    def fetch_pin_file(project, version):
        name = request.args.get("file")
        if not name:
            return "Missing file parameter", 400, TEXT_PLAIN

        reader = ArchiveReader(store.archive_path(project, version))
        try:
            stream = reader.open_file(name)
        except SonopinError:
            reader.close()
            raise

        def generate():
            try:
                for chunk in iter(lambda: stream.read(DEFAULT_DOWNLOAD_CHUNK_SIZE), b''):
                    yield chunk
            finally:
                reader.close()

        response = Response(stream_with_context(generate()), mimetype='application/octet-stream')
        response.headers['Content-Disposition'] = f'attachment; filename="{Path(name).name}"'
        return response

    return app
