"""
API Routes for the analysis queue.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services.queue import queue_service
from ..models.database import Job

api_bp = Blueprint('api', __name__, url_prefix='/api')

MAX_LIST_LIMIT = 200


# ============================================
# Jobs
# ============================================

@api_bp.route('/queue/jobs', methods=['POST'])
def submit_job():
    """Queue a new analysis job."""
    data = request.get_json(silent=True) or {}

    user_id = (data.get('user_id') or '').strip()
    if not user_id:
        return jsonify({'error': 'user_id is required'}), 400

    source_ref = data.get('source_ref') or data.get('content') or ''
    title = data.get('title')
    description = data.get('description')
    if not str(source_ref).strip() and not title and not description:
        return jsonify({'error': 'source_ref, title or description is required'}), 400

    try:
        job = queue_service.submit_job(
            user_id=user_id,
            source_ref=str(source_ref),
            video_path=data.get('video_path'),
            title=title,
            description=description,
        )
    except Exception as e:
        current_app.logger.error(f"Error creating job: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500

    return jsonify({'success': True, 'job': job.to_dict()}), 201


@api_bp.route('/queue/jobs', methods=['GET'])
def list_jobs():
    """List jobs, newest first, optionally for one user."""
    limit = min(request.args.get('limit', 50, type=int), MAX_LIST_LIMIT)
    query = Job.query
    user_id = request.args.get('user_id')
    if user_id:
        query = query.filter_by(user_id=user_id)
    jobs = query.order_by(Job.created_at.desc()).limit(limit).all()
    return jsonify({'jobs': [j.to_dict() for j in jobs]})


@api_bp.route('/queue/jobs/<job_id>', methods=['GET'])
def get_job(job_id: str):
    """Get job details."""
    job = queue_service.get_job(job_id)
    if not job:
        return jsonify({'error': 'Job not found'}), 404
    return jsonify({'job': job.to_dict()})


@api_bp.route('/queue/jobs/<job_id>/progress', methods=['GET'])
def get_job_progress(job_id: str):
    """Get the progress snapshot of a job."""
    snapshot = queue_service.get_progress(job_id)
    if snapshot is None:
        return jsonify({'error': 'Job not found'}), 404
    return jsonify(snapshot)


@api_bp.route('/queue/jobs/<job_id>/cancel', methods=['POST'])
def cancel_job(job_id: str):
    """Cancel a pending job."""
    if queue_service.cancel_job(job_id):
        return jsonify({'success': True})
    return jsonify({'error': 'Job not found or not pending'}), 400


@api_bp.route('/queue/jobs/<job_id>/retry', methods=['POST'])
def retry_job(job_id: str):
    """Retry a failed job."""
    if queue_service.retry_job(job_id):
        return jsonify({'success': True})
    return jsonify({'error': 'Job not found or not failed'}), 400


# ============================================
# Worker
# ============================================

@api_bp.route('/queue/process-next', methods=['POST', 'GET'])
def process_next():
    """Process the oldest pending job and return a summary."""
    try:
        summary = queue_service.process_next()
    except Exception as e:
        current_app.logger.error(f"Error processing queue: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
    return jsonify(summary)


# ============================================
# Results & Status
# ============================================

@api_bp.route('/results/<result_id>', methods=['GET'])
def get_result(result_id: str):
    """Get a stored analysis result."""
    result = queue_service.get_result(result_id)
    if not result:
        return jsonify({'error': 'Result not found'}), 404
    return jsonify({'result': result.to_dict()})


@api_bp.route('/queue/status', methods=['GET'])
def queue_status():
    """Get queue statistics."""
    return jsonify(queue_service.get_queue_status())
