"""
Scheduler admin blueprint.

Endpoints:
    GET   /api/v1/scheduler/jobs               — registered jobs + DB status
    GET   /api/v1/scheduler/jobs/<name>        — one job's status
    POST  /api/v1/scheduler/jobs/<name>/run    — trigger a job now
    PATCH /api/v1/scheduler/jobs/<name>        — {"is_enabled": bool}
"""

import logging

from flask import Blueprint, jsonify, request

from partnerhub.services.scheduler_service import SchedulerService, get_registered_jobs

logger = logging.getLogger(__name__)

scheduler_bp = Blueprint("scheduler", __name__, url_prefix="/api/v1")


@scheduler_bp.route("/scheduler/jobs", methods=["GET"])
def list_scheduled_jobs():
    """List all registered jobs with their status."""
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)})


@scheduler_bp.route("/scheduler/jobs/<job_name>", methods=["GET"])
def get_job_status(job_name):
    job = SchedulerService.get_job_status(job_name)
    if not job:
        return jsonify({"error": f"Job '{job_name}' not found"}), 404
    return jsonify(job)


@scheduler_bp.route("/scheduler/jobs/<job_name>/run", methods=["POST"])
def run_job(job_name):
    """Manually trigger a scheduled job."""
    if job_name not in get_registered_jobs():
        return jsonify({"error": f"Job '{job_name}' not found"}), 404
    result = SchedulerService.run_job(job_name)
    logger.info("Job %s triggered manually: %s", job_name, result.get("status"),
                extra={"job_name": job_name})
    return jsonify(result)


@scheduler_bp.route("/scheduler/jobs/<job_name>", methods=["PATCH"])
def toggle_job(job_name):
    """Enable or disable a scheduled job."""
    data = request.get_json(silent=True) or {}
    enabled = data.get("is_enabled") if isinstance(data, dict) else None
    if not isinstance(enabled, bool):
        return jsonify({"error": "'is_enabled' field is required (true/false)"}), 400

    result = SchedulerService.toggle_job(job_name, enabled)
    if not result:
        return jsonify({"error": f"Job '{job_name}' not found"}), 404
    return jsonify(result)
