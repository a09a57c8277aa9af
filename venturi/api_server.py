"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for venturi networks.

This module provides endpoints for:
- Creating, importing and exporting networks
- Training networks with real-time progress updates via WebSockets
- Querying networks (output and hidden layer activations)
- Persisting networks to/from SQLite database

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background training tasks
- SQLite for network persistence
"""

import os
import sys
import math
import uuid
import base64
import logging
from io import BytesIO
from typing import Dict, Any, List, Optional, Tuple

import gevent
import numpy as np
from flask import Flask, Response, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from venturi import codec
from venturi.dataset import Sample, parse_record
from venturi.errors import ConfigurationError, DecodeError, ShapeMismatchError
from venturi.network import Network, DEFAULT_LEARNING_RATE
from venturi.training import evaluate, train_samples
from venturi.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks
)

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('venturi').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})

is_production = os.getenv('FLASK_ENV') == 'production'

socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}


def _network_info(
    net: Network,
    trained: bool = False,
    accuracy: Optional[float] = None
) -> Dict[str, Any]:
    return {
        'network': net,
        'architecture': net.sizes,
        'activation': net.activation.value if net.activation else None,
        'learning_rate': net.learning_rate,
        'trained': trained,
        'accuracy': accuracy
    }


def reload_saved_networks() -> None:
    """
    Reload all saved networks from the database into memory.

    Called at startup to restore networks that were saved before the
    application was restarted.
    """
    saved_networks = list_saved_networks()

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id)
        if net is not None:
            active_networks[network_id] = _network_info(
                net, net_info['trained'], net_info['accuracy']
            )
            loaded_count += 1
        else:
            logger.warning(f"Failed to load network {network_id}")

    logger.info(f"Reloaded {loaded_count} network(s) from database")


reload_saved_networks()

# ============================================================================
# BACKGROUND TASKS
# ============================================================================

# Flag to ensure cleanup task only starts once
_cleanup_task_started = False


def cleanup_old_networks_task() -> None:
    """
    Background task that runs immediately on startup, then every 24 hours to:
    - Delete networks older than 2 days from the database
    - Drop deleted networks from memory
    - Remove completed/failed training jobs from memory
    """
    while True:
        try:
            logger.info("Starting automatic cleanup of old networks...")
            deleted_count = delete_old_networks(days=2)

            if deleted_count > 0:
                saved_ids = {net['network_id'] for net in list_saved_networks()}
                networks_to_remove = [
                    nid for nid in active_networks.keys()
                    if nid not in saved_ids
                ]
                for nid in networks_to_remove:
                    del active_networks[nid]
                    logger.info(f"Removed network {nid} from memory (deleted from database)")
            elif deleted_count < 0:
                logger.error("Cleanup returned error code")

            cleanup_finished_training_jobs()

            logger.info("Next cleanup scheduled in 24 hours")
            gevent.sleep(86400)

        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            gevent.sleep(3600)


def cleanup_finished_training_jobs() -> None:
    """Remove completed or failed training jobs from memory."""
    finished_statuses = {'completed', 'failed'}
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in finished_statuses
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")


def start_cleanup_task() -> None:
    """
    Start the background cleanup task.

    This function is idempotent - calling it multiple times has no effect.
    """
    global _cleanup_task_started

    if _cleanup_task_started:
        logger.debug("Cleanup task already started, skipping")
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_old_networks_task)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def array_to_float_list(array: np.ndarray) -> List[float]:
    """Convert a numpy array to a list of floats (for JSON serialization)."""
    return [float(val) for val in array.flatten()]


def error_response(message: str, status: int) -> Tuple[Response, int]:
    return jsonify({'error': message}), status


def get_active_network(network_id: str) -> Optional[Network]:
    info = active_networks.get(network_id)
    return info['network'] if info else None


def create_digit_image(inputs: np.ndarray, predicted: int) -> Optional[str]:
    """
    Create a base64-encoded PNG image of a square input vector.

    Args:
        inputs: Flat input vector, e.g. 784 values for a 28x28 digit
        predicted: Index of the strongest output node

    Returns:
        Base64-encoded PNG image string, or None if inputs is not square
    """
    side = math.isqrt(inputs.size)
    if side == 0 or side * side != inputs.size:
        return None

    plt.figure(figsize=(3, 3))
    plt.imshow(inputs.reshape(side, side), cmap='gray')
    plt.title(f"Predicted: {predicted}")
    plt.axis('off')

    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


def parse_samples(data: Dict[str, Any]) -> List[Sample]:
    """
    Build training samples from a request body.

    Accepts either ``samples`` (a list of {'label', 'inputs'} objects with
    normalized inputs) or ``records`` (a list of CSV lines, label first).

    Raises:
        ValueError: If the body holds no usable samples
    """
    if 'records' in data:
        records = data['records']
        if not isinstance(records, list) or not all(isinstance(line, str) for line in records):
            raise ValueError('records must be a list of CSV lines')
        normalize = bool(data.get('normalize', True))
        samples = [parse_record(line, normalize=normalize) for line in records]
    else:
        raw = data.get('samples')
        if not isinstance(raw, list):
            raise ValueError('Request must contain samples or records')
        samples = []
        for item in raw:
            if not isinstance(item, dict) or 'label' not in item or 'inputs' not in item:
                raise ValueError('Each sample needs a label and inputs')
            try:
                samples.append(Sample(
                    int(item['label']),
                    np.asarray(item['inputs'], dtype=np.float32)
                ))
            except (TypeError, ValueError):
                raise ValueError(
                    'Sample label must be an integer and inputs a list of numbers'
                ) from None

    if not samples:
        raise ValueError('No training samples supplied')
    return samples


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and statistics."""
    active_statuses = ('pending', 'training')
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in active_statuses
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new network with random weights.

    Request body (optional):
        {
            'input_nodes': 784,
            'hidden_nodes': 100,
            'output_nodes': 10,
            'learning_rate': 0.3,
            'activation': 'sigmoid'
        }

    Returns:
        JSON with network_id, architecture, and status
    """
    data = request.get_json(silent=True) or {}

    try:
        net = Network(
            data.get('input_nodes', 784),
            data.get('hidden_nodes', 100),
            data.get('output_nodes', 10),
            data.get('learning_rate', DEFAULT_LEARNING_RATE),
            data.get('activation', 'sigmoid')
        )
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid network requested: {e}")
        return error_response(str(e), 400)

    network_id = str(uuid.uuid4())
    active_networks[network_id] = _network_info(net)
    logger.info(f"Created network {network_id} with architecture {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.sizes,
        'activation': active_networks[network_id]['activation'],
        'learning_rate': net.learning_rate,
        'status': 'created'
    }), 201


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body:
        {
            'samples': [{'label': 3, 'inputs': [...]}, ...]
              or 'records': ['3,0,0,255,...', ...],
            'epochs': 1
        }

    Returns:
        JSON with job_id, network_id, and status
    """
    if network_id not in active_networks:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return error_response('Network not found', 404)

    data = request.get_json(silent=True) or {}
    epochs = data.get('epochs', 1)
    if not isinstance(epochs, int) or isinstance(epochs, bool) or epochs < 1:
        return error_response('epochs must be a positive integer', 400)

    try:
        samples = parse_samples(data)
    except ValueError as e:
        return error_response(str(e), 400)

    job_id = str(uuid.uuid4())
    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': epochs
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"samples={len(samples)}, epochs={epochs}"
    )

    socketio.start_background_task(
        train_network_task, network_id, job_id, samples, epochs
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(
    network_id: str,
    job_id: str,
    samples: List[Sample],
    epochs: int
) -> None:
    """
    Background task that trains a network.

    Sends progress updates via WebSocket after every epoch.
    """
    def on_epoch_complete(data: Dict[str, Any]) -> None:
        progress = (data['epoch'] / data['total_epochs']) * 100

        training_jobs[job_id]['status'] = 'training'
        training_jobs[job_id]['progress'] = progress

        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'epoch': data['epoch'],
            'total_epochs': data['total_epochs'],
            'accuracy': data['accuracy'],
            'elapsed_time': data['elapsed_time'],
            'progress': progress,
            'correct': data['correct'],
            'total': data['total']
        })
        gevent.sleep(0)

    def yield_to_other_tasks() -> None:
        gevent.sleep(0)

    try:
        logger.info(f"Starting training for job {job_id}")
        net = active_networks[network_id]['network']

        train_samples(
            net,
            samples,
            epochs,
            callback=on_epoch_complete,
            yield_func=yield_to_other_tasks
        )

        accuracy = evaluate(net, samples) / len(samples)

        # The network may have been deleted while this task yielded
        net_info = active_networks.get(network_id)
        if net_info is None or net_info['network'] is not net:
            raise LookupError(f"Network {network_id} was deleted during training")

        net_info['trained'] = True
        net_info['accuracy'] = accuracy

        training_jobs[job_id]['status'] = 'completed'
        training_jobs[job_id]['accuracy'] = accuracy
        training_jobs[job_id]['progress'] = 100

        save_network(net, network_id, trained=True, accuracy=accuracy)

        logger.info(f"Training completed for job {job_id}: accuracy {accuracy:.2%}")

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'accuracy': float(accuracy),
            'progress': 100
        })

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return error_response('Training job not found', 404)


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved to disk)."""
    in_memory = [
        {
            'network_id': nid,
            'architecture': info['architecture'],
            'activation': info['activation'],
            'learning_rate': info['learning_rate'],
            'trained': info['trained'],
            'accuracy': info['accuracy'],
            'status': 'in_memory'
        }
        for nid, info in active_networks.items()
    ]

    in_memory_ids = set(active_networks.keys())
    saved_only = []
    for net in list_saved_networks():
        if net['network_id'] not in in_memory_ids:
            net['status'] = 'saved'
            saved_only.append(net)

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    deleted_from_memory = active_networks.pop(network_id, None) is not None
    deleted_from_disk = delete_network(network_id)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return error_response('Network not found', 404)

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


def _run_query(network_id: str, hidden: bool):
    net = get_active_network(network_id)
    if net is None:
        return None, error_response('Network not found', 404)

    data = request.get_json(silent=True) or {}
    if 'inputs' not in data:
        return None, error_response('Request must contain inputs', 400)

    try:
        if hidden:
            result = net.query_hidden(data['inputs'])
        else:
            result = net.query(data['inputs'])
    except ConfigurationError as e:
        return None, error_response(str(e), 409)
    except ShapeMismatchError as e:
        return None, error_response(str(e), 400)
    except (TypeError, ValueError) as e:
        return None, error_response(f'Invalid inputs: {e}', 400)

    return result, None


@app.route('/api/networks/<network_id>/query', methods=['POST'])
def query_network(network_id: str):
    """
    Run a forward pass.

    Request body:
        {'inputs': [...], 'render': false}

    Returns:
        JSON with the output vector, the predicted index and, when
        render is true and inputs form a square, a PNG of the inputs
    """
    output, failure = _run_query(network_id, hidden=False)
    if failure:
        return failure

    predicted = int(np.argmax(output))
    body = {
        'network_id': network_id,
        'output': array_to_float_list(output),
        'predicted': predicted
    }

    data = request.get_json(silent=True) or {}
    if data.get('render'):
        inputs = np.asarray(data['inputs'], dtype=np.float32)
        body['image_data'] = create_digit_image(inputs, predicted)

    return jsonify(body), 200


@app.route('/api/networks/<network_id>/query_hidden', methods=['POST'])
def query_hidden_network(network_id: str):
    """Return the hidden layer activations for {'inputs': [...]}."""
    hidden, failure = _run_query(network_id, hidden=True)
    if failure:
        return failure

    return jsonify({
        'network_id': network_id,
        'hidden': array_to_float_list(hidden)
    }), 200


@app.route('/api/networks/<network_id>/export', methods=['GET'])
def export_network(network_id: str):
    """Download a network in the binary layout of venturi.codec."""
    net = get_active_network(network_id)
    if net is None:
        return error_response('Network not found', 404)

    return Response(
        codec.encode(net),
        mimetype='application/octet-stream',
        headers={
            'Content-Disposition': f'attachment; filename={network_id}.bin'
        }
    )


@app.route('/api/networks/import', methods=['POST'])
def import_network():
    """
    Upload a network in the binary layout of venturi.codec.

    The request body is the raw encoded network. The activation is not
    part of the layout and comes from the ``activation`` query parameter
    (default sigmoid).
    """
    activation = request.args.get('activation', 'sigmoid')

    try:
        net = codec.decode(request.get_data(), activation)
    except DecodeError as e:
        logger.warning(f"Rejected network upload: {e}")
        return error_response(f'Invalid network data: {e}', 400)
    except ValueError as e:
        return error_response(str(e), 400)

    network_id = str(uuid.uuid4())
    active_networks[network_id] = _network_info(net)
    save_network(net, network_id, trained=False)
    logger.info(f"Imported network {network_id} with architecture {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.sizes,
        'activation': active_networks[network_id]['activation'],
        'learning_rate': net.learning_rate,
        'status': 'imported'
    }), 201


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Manually trigger cleanup of networks older than specified days.

    Request body (optional):
        {'days': 2}  # defaults to 2
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', 2)

    if (isinstance(days, bool) or not isinstance(days, (int, float))
            or not math.isfinite(days) or days < 0):
        return error_response('days must be a non-negative number', 400)

    deleted_count = delete_old_networks(days=int(days))
    if deleted_count == -1:
        return error_response('Error occurred during cleanup', 500)

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")

    return jsonify({
        'deleted_count': deleted_count,
        'days': days,
        'message': f'Successfully deleted {deleted_count} network(s) older than {days} day(s)'
    }), 200


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    logger.info(f"Starting server at http://localhost:{port}/")

    start_cleanup_task()

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_production,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise
