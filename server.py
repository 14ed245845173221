from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
import os
import uuid
from werkzeug.utils import secure_filename
import json
import logging
from converter import SculptureConverter
from sculpture_errors import Cancelled, SculptureError
from sculpture_params import PRESETS, SculptureParams, get_preset, memory_budget_from_env
from sculpture_progress import CancellationToken
from stl_to_web import mesh_to_threejs_json, get_mesh_info
import threading
import time

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

# Configuration
app.config['UPLOAD_FOLDER'] = os.environ.get('UPLOAD_FOLDER', 'uploads')
app.config['OUTPUT_FOLDER'] = os.environ.get('OUTPUT_FOLDER', 'outputs')
app.config['MAX_CONTENT_LENGTH'] = int(float(os.environ.get('MAX_CONTENT_MB', 50)) * 1024 * 1024)
app.config['MEMORY_BUDGET'] = memory_budget_from_env()
ALLOWED_EXTENSIONS = {'wav', 'mp3', 'flac', 'm4a', 'ogg'}
MAX_DURATION = 120
STATUS_TTL = 3600  # seconds a finished conversion is kept

# Store conversion status
conversion_status = {}
cancel_tokens = {}


def allowed_file(filename):
    return '.' in filename and \
           filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def params_from_form(form):
    """SculptureParams from a JSON 'params' field or a 'preset' name"""
    if form.get('params'):
        return SculptureParams.from_dict(json.loads(form['params']))
    return get_preset(form.get('preset', 'organic'))


@app.route('/upload', methods=['POST'])
def upload_file():
    """Handle audio file upload and start conversion"""
    if 'audio' not in request.files:
        return jsonify({'error': 'No audio file provided'}), 400

    file = request.files['audio']
    if file.filename == '':
        return jsonify({'error': 'No file selected'}), 400

    if not allowed_file(file.filename):
        return jsonify({'error': 'Invalid file type. Please upload an audio file.'}), 400

    # Get conversion parameters
    try:
        duration = int(request.form.get('duration', 20))
        params = params_from_form(request.form)
    except (ValueError, TypeError) as e:
        return jsonify({'error': f'Invalid parameters: {e}'}), 400
    duration = max(1, min(duration, MAX_DURATION))

    # Generate unique ID for this conversion
    conversion_id = str(uuid.uuid4())

    # Save uploaded file
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
    filename = secure_filename(file.filename)
    file_path = os.path.join(app.config['UPLOAD_FOLDER'], f"{conversion_id}_{filename}")
    file.save(file_path)

    # Initialize conversion status
    conversion_status[conversion_id] = {
        'status': 'processing',
        'progress': 0,
        'message': 'Starting conversion...',
        'stl_file': None,
        'error': None,
        'params': params.to_dict(),
        'created_time': time.time(),
    }
    cancel_tokens[conversion_id] = CancellationToken()

    # Start conversion in background thread
    thread = threading.Thread(target=convert_audio_background,
                              args=(conversion_id, file_path, params, duration, file.filename),
                              daemon=True)
    thread.start()

    return jsonify({
        'conversion_id': conversion_id,
        'message': 'Conversion started'
    })


def output_name_for(original_filename, duration, conversion_id):
    """First two words of the upload name, the duration and a short id"""
    name_without_ext = os.path.splitext(secure_filename(original_filename))[0]
    words = name_without_ext.replace('_', ' ').split()[:2]
    first_two_words = "_".join(words) if words else "audio"
    return f"{first_two_words}_{duration}s_{conversion_id[:8]}"


def convert_audio_background(conversion_id, file_path, params, duration, original_filename):
    """Background conversion process"""
    status = conversion_status[conversion_id]

    def on_progress(overall, step, message):
        status['progress'] = round(overall, 1)
        status['message'] = message

    output_folder = app.config['OUTPUT_FOLDER']
    output_name = output_name_for(original_filename, duration, conversion_id)

    try:
        os.makedirs(output_folder, exist_ok=True)
        converter = SculptureConverter(
            file_path,
            output_name,
            params=params,
            available_memory=app.config['MEMORY_BUDGET'],
            cancel_token=cancel_tokens[conversion_id],
            listener=on_progress,
        )

        # Generate the sculpture
        output_filename = f"{output_name}.stl"
        output_path = os.path.join(output_folder, output_filename)
        stl_file, mesh, features = converter.generate_sculpture(duration=duration, filename=output_path)

        # web-compatible geometry for the 3D preview
        json_file = os.path.join(output_folder, f"{output_name}.json")
        mesh_to_threejs_json(mesh, json_file)

        status.update({
            'status': 'completed',
            'progress': 100,
            'message': 'Conversion completed successfully!',
            'stl_file': output_filename,
            'json_file': json_file,
            'mesh_info': get_mesh_info(mesh),
            'features': {
                'tempo': features.tempo,
                'onsets': len(features.onsets),
                'beats': len(features.beat_times),
                'frames': features.frame_count,
                'key': features.key,
            },
        })
        logger.info("conversion %s completed: %s", conversion_id, stl_file)

    except Cancelled as e:
        status.update({
            'status': 'cancelled',
            'error': e.to_dict(),
            'message': 'Conversion cancelled',
        })
        logger.info("conversion %s cancelled during %s", conversion_id, e.step)

    except SculptureError as e:
        status.update({
            'status': 'error',
            'error': e.to_dict(),
            'message': f'Conversion failed: {e.message}',
        })
        logger.warning("conversion %s failed: %s", conversion_id, e.message)

    except Exception as e:
        # decoding and I/O failures surface here; the thread has no caller
        logger.exception("conversion %s crashed", conversion_id)
        status.update({
            'status': 'error',
            'error': {'error': type(e).__name__, 'message': str(e), 'recoverable': False},
            'message': f'Conversion failed: {str(e)}',
        })

    finally:
        cancel_tokens.pop(conversion_id, None)
        # Clean up uploaded file
        if os.path.exists(file_path):
            os.remove(file_path)


def _completed_status(conversion_id, key, not_ready='File not ready'):
    """(status, None) or (None, error response) for a finished conversion"""
    if conversion_id not in conversion_status:
        return None, (jsonify({'error': 'Invalid conversion ID'}), 404)

    status = conversion_status[conversion_id]
    if status['status'] != 'completed' or not status.get(key):
        return None, (jsonify({'error': not_ready}), 400)

    return status, None


@app.route('/status/<conversion_id>')
def get_status(conversion_id):
    """Get conversion status"""
    if conversion_id not in conversion_status:
        return jsonify({'error': 'Invalid conversion ID'}), 404

    return jsonify(conversion_status[conversion_id])


@app.route('/cancel/<conversion_id>', methods=['POST'])
def cancel_conversion(conversion_id):
    """Ask a running conversion to stop at its next checkpoint"""
    if conversion_id not in conversion_status:
        return jsonify({'error': 'Invalid conversion ID'}), 404

    token = cancel_tokens.get(conversion_id)
    if token is None or conversion_status[conversion_id]['status'] != 'processing':
        return jsonify({'error': 'Conversion is not running'}), 409

    token.cancel()
    return jsonify({'conversion_id': conversion_id, 'message': 'Cancellation requested'})


@app.route('/download/<conversion_id>')
def download_file(conversion_id):
    """Download the generated STL file"""
    status, error = _completed_status(conversion_id, 'stl_file', 'File not ready for download')
    if error:
        return error

    file_path = os.path.join(app.config['OUTPUT_FOLDER'], status['stl_file'])
    if not os.path.exists(file_path):
        return jsonify({'error': 'File not found'}), 404

    return send_file(os.path.abspath(file_path), as_attachment=True,
                     download_name=f"audio_sculpture_{conversion_id}.stl")


@app.route('/stl/<conversion_id>')
def serve_stl(conversion_id):
    """Serve STL file for 3D viewer"""
    status, error = _completed_status(conversion_id, 'stl_file')
    if error:
        return error

    file_path = os.path.join(app.config['OUTPUT_FOLDER'], status['stl_file'])
    if not os.path.exists(file_path):
        return jsonify({'error': 'File not found'}), 404

    return send_file(os.path.abspath(file_path), mimetype='application/octet-stream')


@app.route('/preview/<conversion_id>')
def serve_preview_data(conversion_id):
    """Serve 3D preview data (Three.js JSON format)"""
    status, error = _completed_status(conversion_id, 'json_file', 'Preview data not ready')
    if error:
        return error

    json_file_path = status['json_file']
    if not os.path.exists(json_file_path):
        return jsonify({'error': 'Preview file not found'}), 404

    with open(json_file_path, 'r') as f:
        preview_data = json.load(f)

    # Add mesh info to the response
    preview_data['mesh_info'] = status.get('mesh_info', {})

    return jsonify(preview_data)


@app.route('/presets')
def list_presets():
    """Built-in sculpture presets"""
    return jsonify({name: preset.to_dict() for name, preset in PRESETS.items()})


@app.route('/cleanup')
def cleanup_old_files():
    """Clean up old conversion files"""
    current_time = time.time()
    cleaned_count = 0

    # finished conversions older than an hour
    to_remove = [
        conv_id for conv_id, status in list(conversion_status.items())
        if status['status'] != 'processing'
        and current_time - status.get('created_time', current_time) > STATUS_TTL
    ]

    for conv_id in to_remove:
        # Remove associated files
        status = conversion_status.pop(conv_id)
        paths = [status.get('json_file')]
        if status.get('stl_file'):
            paths.append(os.path.join(app.config['OUTPUT_FOLDER'], status['stl_file']))
        for path in paths:
            if path and os.path.exists(path):
                os.remove(path)
        cleaned_count += 1

    return jsonify({'message': f'Cleaned up {cleaned_count} old conversions'})


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)

    print("🎵 Audio Sculpture Generator Server")
    print("=" * 40)
    print("Starting server on http://localhost:8080")
    print("Upload audio files to generate 3D sculptures!")
    print("=" * 40)

    app.run(debug=True, host='0.0.0.0', port=8080)
