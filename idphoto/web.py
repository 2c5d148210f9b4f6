#!/usr/bin/env python3
"""
idphoto - Web Interface
Flask-based API for document photo export, background removal and print sheets
"""

import asyncio
import io
import logging
import os
import threading
from pathlib import Path
from typing import Optional

from flask import Flask, Response, jsonify, request, send_file
from werkzeug.utils import secure_filename

from .background import BackgroundRemovalError, ProviderId, RemovalOrchestrator, RemovalProgress
from .compositor import check_file_size, encode_jpeg, export_filename, render_export
from .config import (
    DEFAULT_PAPER, DEFAULT_PHOTO_COUNT, MAX_UPLOAD_MB, PAPER_SIZES,
    DocumentSpec, PaperSize, get_paper, get_spec, get_spec_list,
)
from .geometry import FilterState, TransformState, clamp_filter, fit_transform, preview_frame_size
from .printing import print_markup
from .sheet import SheetGenerator, clamp_photo_count, plan_for
from .utils import GPUInfo, ImageLoadError, encode_png, load_image
from .validation import FaceValidator

# =============================================================================
# PATHS
# =============================================================================

PROJECT_ROOT = Path(__file__).parent.parent.absolute()
LOG_DIR = PROJECT_ROOT / 'logs'
ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg'}

os.makedirs(LOG_DIR, exist_ok=True)

# =============================================================================
# LOGGING
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOG_DIR / 'idphoto.log'),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger(__name__)

# =============================================================================
# FLASK APP
# =============================================================================

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_MB * 1024 * 1024

# =============================================================================
# SHARED SERVICES (single instances)
# =============================================================================

_orchestrator: Optional[RemovalOrchestrator] = None
_validator: Optional[FaceValidator] = None
# One removal at a time across request threads
_removal_lock = threading.Lock()
_sheet_gen = SheetGenerator()


def _get_orchestrator() -> RemovalOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        from .providers import default_providers
        logger.info("Creating RemovalOrchestrator instance...")
        _orchestrator = RemovalOrchestrator(default_providers())
    return _orchestrator


def _get_validator() -> FaceValidator:
    global _validator
    if _validator is None:
        from .face_detection import MediaPipeFaceDetector
        _validator = FaceValidator(MediaPipeFaceDetector())
    return _validator


def configure(orchestrator: Optional[RemovalOrchestrator] = None,
              validator: Optional[FaceValidator] = None) -> None:
    """Inject services (used by tests and embedding applications)."""
    global _orchestrator, _validator
    _orchestrator = orchestrator
    _validator = validator


# =============================================================================
# ERRORS
# =============================================================================

class RequestError(Exception):
    """Invalid request parameters"""

    def __init__(self, message: str, details: str = ''):
        super().__init__(message)
        self.details = details


@app.errorhandler(413)
def request_entity_too_large(error):
    return jsonify({
        'error': f'File too large. Maximum file size is {MAX_UPLOAD_MB}MB.',
        'error_type': 'file_too_large',
    }), 413


@app.errorhandler(RequestError)
def bad_request(error: RequestError):
    return jsonify({
        'error': str(error),
        'error_type': 'validation_error',
        'error_details': error.details,
    }), 400


@app.errorhandler(ValueError)
def invalid_value(error: ValueError):
    return jsonify({
        'error': str(error),
        'error_type': 'validation_error',
        'error_details': '',
    }), 400


@app.errorhandler(ImageLoadError)
def image_load_failed(error: ImageLoadError):
    logger.warning(f"Image load failed: {error}")
    return jsonify({'error': str(error), 'error_type': 'image_load_error'}), 400


@app.errorhandler(BackgroundRemovalError)
def removal_failed(error: BackgroundRemovalError):
    return jsonify({
        'error': str(error),
        'error_type': type(error).__name__,
        'method': error.provider.value if error.provider else None,
        'retry_methods': [p.value for p in ProviderId],
    }), 502


@app.errorhandler(500)
def internal_server_error(error):
    logger.error(f"Internal server error: {error}")
    return jsonify({
        'error': 'Internal server error',
        'error_type': 'server_error',
        'error_details': str(error),
    }), 500


# =============================================================================
# HELPERS
# =============================================================================

def _allowed_file(filename: str) -> bool:
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def _read_upload():
    if 'file' not in request.files:
        raise RequestError('No file uploaded')
    file = request.files['file']
    if file.filename == '':
        raise RequestError('No file selected')
    filename = secure_filename(file.filename)
    if not _allowed_file(filename):
        raise RequestError('Invalid file type. Allowed: PNG, JPG, JPEG')
    return load_image(file.read())


def _read_spec() -> DocumentSpec:
    spec_id = request.form.get('spec') or request.args.get('spec', 'usa')
    spec = get_spec(spec_id)
    if spec is None:
        raise RequestError('Invalid document spec', f"Available: {', '.join(s['id'] for s in get_spec_list())}")
    return spec


def _read_paper() -> PaperSize:
    key = request.form.get('paper', DEFAULT_PAPER)
    paper = get_paper(key)
    if paper is None:
        raise RequestError('Invalid paper size', f"Available: {', '.join(PAPER_SIZES)}")
    return paper


def _float(name: str, default: Optional[float] = None) -> Optional[float]:
    raw = request.form.get(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise RequestError(f'Invalid number for {name}', raw)


def _jpeg_response(data: bytes, filename: str) -> Response:
    return send_file(io.BytesIO(data), mimetype='image/jpeg',
                     as_attachment=True, download_name=filename)


def _build_sheet(spec: DocumentSpec, paper: PaperSize) -> bytes:
    photo = _read_upload()
    plan = plan_for(paper, spec)
    count = clamp_photo_count(int(_float('count', DEFAULT_PHOTO_COUNT)), plan.total)
    if count == 0:
        raise RequestError(f'{spec.name} photos do not fit on {paper.name}')
    sheet = _sheet_gen.create_sheet(photo, spec, paper, count)
    return encode_jpeg(sheet)


# =============================================================================
# ROUTES
# =============================================================================

@app.route('/api/specs')
def list_specs():
    return jsonify(get_spec_list())


@app.route('/api/specs/<spec_id>')
def spec_detail(spec_id):
    spec = get_spec(spec_id)
    if spec is None:
        return jsonify({'error': 'Spec not found'}), 404
    data = spec.to_dict()
    data['preview_frame'] = list(preview_frame_size(spec))
    return jsonify(data)


@app.route('/api/papers')
def list_papers():
    spec = get_spec(request.args.get('spec', ''))
    papers = []
    for paper in PAPER_SIZES.values():
        entry = {'key': paper.key, 'name': paper.name,
                 'width_mm': paper.width_mm, 'height_mm': paper.height_mm}
        if spec is not None:
            plan = plan_for(paper, spec)
            entry.update({'columns': plan.columns, 'rows': plan.rows, 'total': plan.total})
        papers.append(entry)
    return jsonify(papers)


@app.route('/api/validate', methods=['POST'])
def validate_face():
    image = _read_upload()
    check = asyncio.run(_get_validator().validate(image))
    return jsonify(check.to_dict())


@app.route('/api/remove-background', methods=['POST'])
def remove_background():
    logger.info("=== New background removal request ===")
    image = _read_upload()
    spec = _read_spec()
    method = request.form.get('method') or None
    try:
        preferred = ProviderId.parse(method) if method else None
    except ValueError as e:
        raise RequestError(str(e))

    def log_progress(p: RemovalProgress) -> None:
        logger.info(f"[{p.method.value}] {p.progress}% {p.status}")

    with _removal_lock:
        result = asyncio.run(_get_orchestrator().remove_background(
            image, spec.background_rgb, log_progress, preferred,
        ))

    response = send_file(io.BytesIO(encode_png(result.image)), mimetype='image/png')
    response.headers['X-Removal-Method'] = result.method_used.value
    return response


@app.route('/api/export', methods=['POST'])
def export_photo():
    image = _read_upload()
    spec = _read_spec()
    frame = (
        _float('frame_width', None) or preview_frame_size(spec)[0],
        _float('frame_height', None) or preview_frame_size(spec)[1],
    )

    scale = _float('scale')
    if scale is None:
        transform = fit_transform(frame[0], frame[1], image.width, image.height)
    else:
        if scale <= 0:
            raise RequestError('Scale must be positive')
        transform = TransformState(scale, _float('offset_x', 0.0), _float('offset_y', 0.0))
    filters = FilterState(
        brightness=clamp_filter(_float('brightness', 100)),
        contrast=clamp_filter(_float('contrast', 100)),
    )

    photo = render_export(image, transform, filters, spec, frame)
    data = encode_jpeg(photo)
    size_check = check_file_size(data, spec)
    logger.info(f"Exported {spec.id}: {size_check.message}")

    response = _jpeg_response(data, export_filename(spec))
    response.headers['X-File-Size-KB'] = f"{size_check.size_kb:.1f}"
    response.headers['X-File-Size-OK'] = 'true' if size_check.within_bounds else 'false'
    return response


@app.route('/api/sheet', methods=['POST'])
def print_sheet():
    spec = _read_spec()
    paper = _read_paper()
    return _jpeg_response(_build_sheet(spec, paper), export_filename(spec, paper))


@app.route('/api/print', methods=['POST'])
def print_document():
    spec = _read_spec()
    paper = _read_paper()
    html = print_markup(_build_sheet(spec, paper), paper)
    return Response(html, mimetype='text/html')


@app.route('/api/health')
def health_check():
    orchestrator = _orchestrator
    return jsonify({
        'status': 'ok',
        'orchestrator_initialized': orchestrator is not None,
        'providers': [p.value for p in orchestrator.provider_ids] if orchestrator else [],
        'removal_busy': _removal_lock.locked(),
    })


@app.route('/api/gpu-info')
def gpu_info():
    info = GPUInfo.get_info()
    return jsonify({
        'cuda_available': info.get('available', False),
        'device': info.get('device', 'CPU'),
        'gpu_name': info.get('name'),
        'gpu_memory_total': f"{info['vram_total_gb']} GB" if info.get('vram_total_gb') else None,
        'gpu_memory_free': f"{info['vram_free_gb']} GB" if info.get('vram_free_gb') else None,
    })


# =============================================================================
# SERVER
# =============================================================================

def run_server(host='127.0.0.1', port=8080, debug=False):
    logger.info("=" * 70)
    logger.info("idphoto - Document Photo Studio Web Interface")
    logger.info("=" * 70)
    GPUInfo.log_info()
    logger.info(f"Log file: {LOG_DIR / 'idphoto.log'}")
    logger.info(f"Starting server at http://{host}:{port}")
    logger.info("=" * 70)
    app.run(host=host, port=port, debug=debug)


if __name__ == '__main__':
    run_server(debug=True)
