"""
FOR-ATA-057 Report Engine - Backend API

Flask application serving the 360° GSE inspection report as a print preview
(HTML) and as an export document (PDF).
"""

import os
import logging
from datetime import datetime
from flask import Flask, request, jsonify, Response
from flask_cors import CORS
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

import database as db
import report_service
from matrix_layout import LayoutOptions
from report_service import InspectionNotFoundError, ReportUnavailableError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)  # Enable CORS for frontend

TRUE_VALUES = {'1', 'true', 'yes', 'on'}
FALSE_VALUES = {'0', 'false', 'no', 'off'}


def _flag(name: str, default: bool) -> bool:
    """Read a boolean query flag; anything unrecognized keeps the default."""
    value = request.args.get(name)
    if value is None:
        return default
    value = value.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    return default


def _layout_options() -> LayoutOptions:
    return LayoutOptions.from_flags(
        pad_rows=_flag('pad', True),
        header_mode=request.args.get('header_mode', 'text'),
    )


def _not_found(inspection_id):
    return jsonify({"error": "Inspection not found", "id": inspection_id}), 404


def _unavailable(e):
    return jsonify({
        "error": "Report unavailable",
        "message": str(e)
    }), 503


@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return jsonify({
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat()
    })


@app.route('/api/inspections', methods=['GET'])
def get_inspections():
    """Get inspection summaries, newest first."""
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 10, type=int)

    try:
        result = db.list_inspections(page=max(1, page), per_page=max(1, limit))
    except SQLAlchemyError as e:
        logger.error(f"Error listing inspections: {e}", exc_info=True)
        return _unavailable(e)

    return jsonify({
        "records": [report_service.inspection_summary(i) for i in result["inspections"]],
        "total": result["pagination"]["total"],
        "page": page,
        "limit": limit
    }), 200


@app.route('/api/inspections/<inspection_id>/report-model', methods=['GET'])
def get_report_model(inspection_id):
    """Get the report model and matrix layout as JSON."""
    try:
        payload = report_service.report_payload_for(inspection_id, _layout_options())
        return jsonify(payload), 200
    except InspectionNotFoundError:
        return _not_found(inspection_id)
    except ReportUnavailableError as e:
        return _unavailable(e)
    except Exception as e:
        logger.error(f"Error building report model for {inspection_id}: {e}", exc_info=True)
        return jsonify({
            "error": "Failed to build report model",
            "message": str(e)
        }), 500


@app.route('/api/inspections/<inspection_id>/report', methods=['GET'])
def get_report_preview(inspection_id):
    """
    Render the print preview.

    Query params:
    - compact: 1 for smaller fonts and row heights
    - pad: 0 to drop placeholder rows and blank entries (default 1)
    - header_mode: codes or text (default text)
    - print: true to open the print dialog once the page has loaded
    """
    try:
        html = report_service.render_preview_for(
            inspection_id,
            _layout_options(),
            compact=_flag('compact', False),
            auto_print=_flag('print', False),
        )
        return Response(html, mimetype='text/html')
    except InspectionNotFoundError:
        return _not_found(inspection_id)
    except ReportUnavailableError as e:
        return _unavailable(e)
    except Exception as e:
        logger.error(f"Error rendering preview for {inspection_id}: {e}", exc_info=True)
        return jsonify({
            "error": "Failed to render report",
            "message": str(e)
        }), 500


@app.route('/api/inspections/<inspection_id>/export/pdf', methods=['GET'])
def export_report_pdf(inspection_id):
    """
    Export the report as a PDF attachment.

    Filename: {form_code or "Inspeccion"}_{station}.pdf
    """
    try:
        pdf_bytes, filename = report_service.render_export_for(inspection_id, _layout_options())
    except InspectionNotFoundError:
        return _not_found(inspection_id)
    except ReportUnavailableError as e:
        return _unavailable(e)
    except Exception as e:
        logger.error(f"Error generating PDF for inspection {inspection_id}: {e}", exc_info=True)
        return jsonify({
            "error": "Failed to generate PDF",
            "message": str(e)
        }), 500

    return Response(
        pdf_bytes,
        mimetype='application/pdf',
        headers={
            'Content-Disposition': f'attachment; filename="{secure_filename(filename) or "Inspeccion.pdf"}"'
        }
    )


if __name__ == '__main__':
    print("Starting FOR-ATA-057 Report Engine...")
    port = int(os.getenv("BACKEND_PORT", "5000"))
    print(f"Backend API running on http://localhost:{port}")
    print(f"API Documentation: http://localhost:{port}/api/health")
    print(f"Database: SQLite ({db.DATABASE_URL})")
    app.run(debug=True, host='0.0.0.0', port=port)
